"""
Metadata registry - schema roles attached to model classes.

Roles are declared on pydantic fields with ``Annotated`` markers::

    class Page(Entity):
        text: str = ""
        author: Annotated[Optional[User], Reference()] = None
        comments: Annotated[List[Comment], Nested()] = Field(default_factory=list)
        draft: Annotated[Optional[str], Ignore()] = None
        slug: Annotated[str, Index(1, unique=True)] = ""

and collected once, when the class is defined. The registry is keyed by
(class, kind) and is only read afterwards.
"""

from __future__ import annotations

import logging
import types
from dataclasses import dataclass
from enum import Enum
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    ForwardRef,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
    get_args,
    get_origin,
)

from bson import ObjectId
from pydantic import BaseModel

from .errors import ConfigurationError
from .indexing import Direction, IndexSpec, field_index

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = (ObjectId, str, int, float, bool, bytes)


class MetadataKind(str, Enum):
    """Kinds of schema metadata stored per class."""

    ID = "mongo:id"
    OBJECT_IDS = "mongo:object_ids"
    REFS = "mongo:refs"
    NESTED = "mongo:nested"
    IGNORE = "mongo:ignore"
    INDEXES = "mongo:indexes"


_LIST_KINDS = {MetadataKind.NESTED, MetadataKind.INDEXES}
_DICT_KINDS = {MetadataKind.REFS, MetadataKind.IGNORE, MetadataKind.OBJECT_IDS}

_registry: Dict[Tuple[type, MetadataKind], Any] = {}
_registered: Set[type] = set()


@dataclass(frozen=True)
class Ref:
    """A reference field: the logical name, its shadow id field and arity."""

    name: str
    id_field: str
    array: bool = False


@dataclass(frozen=True)
class NestedField:
    name: str
    type_function: Callable[[], type]
    array: bool = False

    def resolve(self) -> type:
        return self.type_function()


def define(kind: MetadataKind, value: Any, target: type, field_name: Optional[str] = None) -> None:
    """Store ``value`` under (target, kind).

    List kinds append, dict kinds merge by key and scalar kinds overwrite.
    For dict kinds a non-mapping value is stored under ``field_name``.
    """
    key = (target, kind)
    if kind in _LIST_KINDS:
        values = list(value) if isinstance(value, (list, tuple)) else [value]
        _registry[key] = _registry.get(key, []) + values
    elif kind in _DICT_KINDS:
        if not isinstance(value, Mapping):
            if not field_name:
                raise ConfigurationError(f"{kind.value} metadata needs a field name")
            value = {field_name: value}
        merged = dict(_registry.get(key, {}))
        merged.update(value)
        _registry[key] = merged
    else:
        _registry[key] = value


def get(kind: MetadataKind, target: type) -> Any:
    """Return the stored value or an empty default. Never raises."""
    value = _registry.get((target, kind))
    if value is None:
        if kind in _LIST_KINDS:
            return []
        if kind in _DICT_KINDS:
            return {}
        return None
    if kind in _LIST_KINDS:
        return list(value)
    return value


def unwrap(annotation: Any) -> Tuple[Any, bool]:
    """Strip Annotated/Optional/list layers off a field annotation.

    Returns the element type and whether the field holds a sequence.
    """
    array = False
    while True:
        origin = get_origin(annotation)
        if origin is None:
            if isinstance(annotation, str):
                annotation = ForwardRef(annotation)
            return annotation, array
        args = get_args(annotation)
        if origin is Union or origin is types.UnionType:
            args = [arg for arg in args if arg is not type(None)]
            if len(args) != 1:
                return annotation, array
            annotation = args[0]
        elif origin is Annotated:
            annotation = args[0]
        elif origin in (list, tuple, set, frozenset):
            array = True
            annotation = args[0] if args else Any
        else:
            return annotation, array


def _is_primitive(field_type: Any) -> bool:
    return isinstance(field_type, type) and issubclass(field_type, PRIMITIVE_TYPES)


def _ensure_not_primitive(field_type: Any, field_name: str, role: str) -> None:
    if _is_primitive(field_type):
        raise ConfigurationError(
            f"field '{field_name}' cannot have {role} type '{field_type.__name__}'"
        )


class Marker:
    """Base for ``Annotated`` role markers."""

    def apply(self, target: type, field_name: str, field_type: Any, array: bool) -> None:
        raise NotImplementedError


class Id(Marker):
    """Marks the field stored as the document ``_id``."""

    def apply(self, target, field_name, field_type, array):
        current = get(MetadataKind.ID, target)
        if current and current != field_name:
            raise ConfigurationError(
                f"'{target.__name__}' declares more than one identity field: "
                f"'{current}' and '{field_name}'"
            )
        define(MetadataKind.ID, field_name, target)


class Nested(Marker):
    """Marks an embedded sub-document (or list of them).

    ``type_function`` resolves the sub-document class lazily, which is what
    self-referencing and forward-declared types need.
    """

    def __init__(self, type_function: Optional[Callable[[], type]] = None):
        self.type_function = type_function

    def apply(self, target, field_name, field_type, array):
        _ensure_not_primitive(field_type, field_name, "nested")
        type_function = self.type_function
        if type_function is None:
            if not isinstance(field_type, type):
                raise ConfigurationError(
                    f"cannot resolve nested type of field '{field_name}', pass Nested(lambda: ...)"
                )
            type_function = lambda: field_type  # noqa: E731
        define(MetadataKind.NESTED, NestedField(field_name, type_function, array), target)


class Reference(Marker):
    """Marks a field holding another entity (or list of entities).

    Only the referenced identities are persisted, under ``id_field``, which
    defaults to ``<field>_id`` or ``<field>_ids``.
    """

    def __init__(self, id_field: Optional[str] = None):
        self.id_field = id_field

    def apply(self, target, field_name, field_type, array):
        _ensure_not_primitive(field_type, field_name, "referenced")
        id_field = self.id_field or (f"{field_name}_ids" if array else f"{field_name}_id")
        define(MetadataKind.REFS, {field_name: Ref(field_name, id_field, array)}, target)
        if not self.id_field:
            define(MetadataKind.OBJECT_IDS, {id_field: array}, target)


class Ignore(Marker):
    """Keeps a field in memory only."""

    def apply(self, target, field_name, field_type, array):
        define(MetadataKind.IGNORE, True, target, field_name)


class Index(Marker):
    """Single-field index. Options go to createIndexes as they are."""

    def __init__(self, direction: Direction = 1, **options: Any):
        self.direction = direction
        self.options = options

    def __call__(self, target: Any) -> Any:
        raise ConfigurationError(
            "Index can only be applied to model fields, use @indexes for class-level indexes"
        )

    def apply(self, target, field_name, field_type, array):
        define(MetadataKind.INDEXES, field_index(field_name, self.direction, self.options), target)


def indexes(specs: Iterable[Union[IndexSpec, Mapping[str, Any]]]):
    """Class decorator declaring compound or otherwise class-level indexes."""
    compiled = [IndexSpec.from_mapping(spec) for spec in specs]

    def decorator(target: type) -> type:
        if not isinstance(target, type):
            raise ConfigurationError("@indexes can only be applied to classes")
        define(MetadataKind.INDEXES, compiled, target)
        return target

    return decorator


def register_model(target: type) -> type:
    """Collect the role markers of a pydantic model into the registry.

    ObjectId-typed fields are registered as identity-typed values and
    un-marked fields holding pydantic models are treated as nested.
    Registering the same class twice is a no-op.
    """
    if target in _registered:
        return target
    _registered.add(target)

    for name, info in target.model_fields.items():
        field_type, array = unwrap(info.annotation)
        markers: List[Marker] = [m for m in info.metadata if isinstance(m, Marker)]

        if field_type is ObjectId:
            define(MetadataKind.OBJECT_IDS, {name: array}, target)

        roles = {type(m) for m in markers}
        if (
            not roles & {Nested, Reference, Ignore}
            and isinstance(field_type, type)
            and issubclass(field_type, BaseModel)
        ):
            markers.append(Nested())

        for marker in markers:
            marker.apply(target, name, field_type, array)

    logger.debug(
        f"Registered {target.__name__}: id={get(MetadataKind.ID, target)!r} "
        f"refs={sorted(get(MetadataKind.REFS, target))} "
        f"nested={[n.name for n in get(MetadataKind.NESTED, target)]}"
    )
    return target


def identity_field(target: type) -> Optional[str]:
    return get(MetadataKind.ID, target)


def references(target: type) -> Dict[str, Ref]:
    return get(MetadataKind.REFS, target)


def nested_fields(target: type) -> List[NestedField]:
    return get(MetadataKind.NESTED, target)


def ignored_fields(target: type) -> Dict[str, bool]:
    return get(MetadataKind.IGNORE, target)


def index_specs(target: type) -> List[IndexSpec]:
    return get(MetadataKind.INDEXES, target)
