"""Order information service: HTTP API over stored orders, Redis cache and order event handling."""

__version__ = "0.1.0"