"""Client, storage drivers and ASGI web service for OGC APIs and STAC."""

__version__ = "0.1.0"