"""Custom exceptions for the object-document mapper."""

from __future__ import annotations


class DocMapperError(Exception):
    """Base exception for mapping failures."""


class ConfigurationError(DocMapperError):
    """Raised when a model schema or repository is declared incorrectly."""


class MissingIdentityError(ConfigurationError):
    """Raised when a repository is created for a model without an identity field."""

    def __init__(self, model: type):
        super().__init__(
            f"repository cannot be created for entity '{model.__name__}' "
            "because none of its fields is marked with Id()"
        )
        self.model = model


class NestingDepthError(DocMapperError):
    """Raised when nested documents recurse deeper than the mapper allows.

    Cyclic nested graphs are not supported; this is how they surface.
    """


class ResolutionError(DocMapperError):
    """Raised when a reference cannot be resolved."""


class UnknownReferenceError(ResolutionError):
    """Raised when populate is asked for a reference the model does not declare."""

    def __init__(self, ref_name: str, model: type):
        super().__init__(f"cannot find ref '{ref_name}' on '{model.__name__}'")
        self.ref_name = ref_name
        self.model = model
