"""HTTP and WebSocket server shell."""
from .app import GraphQLView, create_app
from .middleware import HeaderFilter

__all__ = ["GraphQLView", "HeaderFilter", "create_app"]
