"""Service-mesh dataplane logic: configuration, original identity, authorization check requests and control-plane state and delivery."""

__version__ = "0.1.0"