"""Base classes for mapped models."""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict

from docmapper.coercion import PyObjectId
from docmapper.metadata import Id, register_model


class Document(BaseModel):
    """
    Base for every mapped model, top-level or embedded.

    Subclasses have their schema roles collected as soon as they are defined.
    Unknown keys are kept as extra attributes, which is also where reference
    shadow fields live when the model does not declare them.
    """

    model_config = ConfigDict(
        extra="allow",
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        register_model(cls)


class Entity(Document):
    """Top-level model identified by an ObjectId stored as ``_id``."""

    id: Annotated[Optional[PyObjectId], Id()] = None


__all__ = ["Document", "Entity", "PyObjectId"]
