"""mediabridge: cross-provider identity resolution and caching substrate."""

__version__ = "1.0.0"
