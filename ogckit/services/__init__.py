"""ASGI web service for OGC API endpoints: configuration, errors, state and server."""