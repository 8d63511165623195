"""Repository layer for database operations"""

from .base import Repository
from .cursor import HydratingCursor

__all__ = ["Repository", "HydratingCursor"]
