"""Schema composition and delegation."""
from .composer import compose
from .delegation import Delegator, SelectionRewriter

__all__ = ["compose", "Delegator", "SelectionRewriter"]
