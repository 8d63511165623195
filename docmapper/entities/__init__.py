"""Mapped model base classes"""

from .base import Document, Entity, PyObjectId

__all__ = ["Document", "Entity", "PyObjectId"]
