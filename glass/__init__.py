"""glass: indexes scenes published on a Catalyst content server."""

__version__ = "0.1.0"
