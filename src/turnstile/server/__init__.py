"""ASGI server layer: request handling, response sending, discovery."""
