"""WSGI REST endpoints for messaging, inspecting and managing connected client nodes."""

__version__ = "0.1.0"