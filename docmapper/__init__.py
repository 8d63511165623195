"""docmapper - map pydantic models to MongoDB documents and back."""

from .coercion import PyObjectId
from .entities import Document, Entity
from .errors import (
    ConfigurationError,
    DocMapperError,
    MissingIdentityError,
    NestingDepthError,
    ResolutionError,
    UnknownReferenceError,
)
from .indexing import IndexSpec
from .mapping import STORAGE_ID, dehydrate, hydrate, translate_filter
from .metadata import Id, Ignore, Index, Nested, Reference, indexes, register_model
from .repositories import HydratingCursor, Repository

__version__ = "1.0.0"

__all__ = [
    # Models
    "Document",
    "Entity",
    "PyObjectId",
    # Schema roles
    "Id",
    "Nested",
    "Reference",
    "Ignore",
    "Index",
    "indexes",
    "IndexSpec",
    "register_model",
    # Mapping
    "STORAGE_ID",
    "dehydrate",
    "hydrate",
    "translate_filter",
    # Repositories
    "Repository",
    "HydratingCursor",
    # Errors
    "DocMapperError",
    "ConfigurationError",
    "MissingIdentityError",
    "NestingDepthError",
    "ResolutionError",
    "UnknownReferenceError",
]
