"""Compound subgraph extensions."""
from .fields import DERIVED_FIELDS, EXTENSION_SDL, DerivedField

__all__ = ["DERIVED_FIELDS", "EXTENSION_SDL", "DerivedField"]
