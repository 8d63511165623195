"""
Index specifications and their compilation into pymongo IndexModels.

Options are passed through to ``createIndexes`` untouched, see
https://www.mongodb.com/docs/manual/reference/command/createIndexes/ for the
accepted keys (unique, sparse, background, partialFilterExpression,
expireAfterSeconds, weights, default_language, collation, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pymongo import IndexModel

from .errors import ConfigurationError

Direction = Union[int, str]


@dataclass(frozen=True)
class IndexSpec:
    """A named index: key specification plus an opaque options bag."""

    name: str
    key: Dict[str, Direction]
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Union["IndexSpec", Mapping[str, Any]]) -> "IndexSpec":
        """Build a spec from the ``{"name": ..., "key": {...}, **options}`` form."""
        if isinstance(raw, IndexSpec):
            return raw
        options = dict(raw)
        key = options.pop("key", None)
        name = options.pop("name", None)
        if not key or not name:
            raise ConfigurationError("class-level index specifications need both 'key' and 'name'")
        return cls(name=name, key=dict(key), options=options)

    def with_background(self) -> "IndexSpec":
        return replace(self, options={**self.options, "background": True})

    def to_model(self, force_background: bool = False) -> IndexModel:
        spec = self.with_background() if force_background else self
        return IndexModel(list(spec.key.items()), name=spec.name, **spec.options)


def field_index(
    field_name: Optional[str],
    direction: Direction = 1,
    options: Optional[Mapping[str, Any]] = None,
) -> IndexSpec:
    """Build the spec for an index declared on a single field.

    The index is named after the field unless ``options`` carries a name.
    """
    if not field_name:
        raise ConfigurationError("Index can only be applied to model fields")
    options = dict(options or {})
    name = options.pop("name", field_name)
    return IndexSpec(name=name, key={field_name: direction}, options=options)


def compile_indexes(specs: Iterable[IndexSpec], force_background: bool = False) -> List[IndexModel]:
    return [spec.to_model(force_background) for spec in specs]
