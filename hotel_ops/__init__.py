"""Hotel operations backend: service-request lifecycle and guest notification dispatch."""

__version__ = "0.1.0"
