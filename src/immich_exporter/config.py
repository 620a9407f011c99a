"""
Startup configuration. Values come from the CLI, which reads them from
IMMICH_URL, IMMICH_API_KEY and LISTEN_ADDRESS when flags aren't given.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from immich_exporter.errors import ConfigError

DEFAULT_LISTEN_ADDRESS = ":8080"


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split "host:port", ":port" or "[v6addr]:port" into (host, port).

    An empty host means all IPv4 interfaces.
    """
    host, sep, port_text = address.rpartition(":")
    if not sep:
        raise ConfigError(f"listen address {address!r} must be host:port or :port")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ConfigError(f"IPv6 listen address {address!r} must be bracketed, e.g. [::]:8080")

    try:
        port = int(port_text)
    except ValueError:
        raise ConfigError(f"listen address {address!r} has invalid port {port_text!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"listen address {address!r} port out of range")

    return host or "0.0.0.0", port


@dataclass(frozen=True)
class ExporterConfig:
    immich_url: str
    api_key: str
    listen_address: str = DEFAULT_LISTEN_ADDRESS

    @property
    def listen_host(self) -> str:
        return parse_listen_address(self.listen_address)[0]

    @property
    def listen_port(self) -> int:
        return parse_listen_address(self.listen_address)[1]


def load_config(
    immich_url: Optional[str],
    api_key: Optional[str],
    listen_address: Optional[str] = None,
) -> ExporterConfig:
    """Validate raw settings. Raises ConfigError on anything missing or malformed."""
    missing = [
        name for name, value in (("IMMICH_URL", immich_url), ("IMMICH_API_KEY", api_key))
        if not value
    ]
    if missing:
        raise ConfigError(f"{' and '.join(missing)} must be set")

    if not immich_url.startswith(("http://", "https://")):
        raise ConfigError(f"IMMICH_URL must start with http:// or https:// (got {immich_url!r})")

    listen_address = listen_address or DEFAULT_LISTEN_ADDRESS
    parse_listen_address(listen_address)

    return ExporterConfig(
        immich_url=immich_url,
        api_key=api_key,
        listen_address=listen_address,
    )
