"""Prometheus exporter for an Immich photo server."""

__version__ = "0.1.0"

# Stamped by release builds
__commit__ = "none"
__build_date__ = "unknown"
