"""Service registry for breaking circular imports.

This module holds the chat service instance so that routes can import it
without causing circular imports with the main module.
"""

# Global service instance - set by main.py during initialization
service = None


def set_service(service_instance):
    """Set the global chat service instance."""
    global service
    service = service_instance


def get_service():
    """Get the global chat service instance."""
    if service is None:
        raise RuntimeError("Chat service not initialized. Did you call set_service?")
    return service
