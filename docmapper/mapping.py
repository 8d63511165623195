"""
Dehydration and hydration - converting between model instances and the flat
documents MongoDB stores.

``dehydrate`` turns an entity into a storage-ready dict:
- reference fields are replaced by their shadow id field(s)
- the identity field is stored under ``_id``
- nested models are dehydrated recursively
- ignored fields are dropped

``hydrate`` is the inverse, except that references are never resolved; use
``Repository.populate`` for that.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel

from .coercion import coerce_document
from .errors import ConfigurationError, NestingDepthError
from .metadata import identity_field, ignored_fields, nested_fields, references

T = TypeVar("T")

STORAGE_ID = "_id"

# Nested documents deeper than this are assumed to be a cycle.
MAX_DEPTH = 64


def _attributes(entity: Any) -> Dict[str, Any]:
    """Shallow copy of an object's own attributes."""
    if isinstance(entity, BaseModel):
        return {**entity.__dict__, **(entity.__pydantic_extra__ or {})}
    if isinstance(entity, Mapping):
        return dict(entity)
    return dict(vars(entity))


def identity_of(entity: Any) -> Any:
    """Return the identity value of an entity, None for None."""
    if entity is None:
        return None
    id_field = identity_field(type(entity))
    if not id_field:
        raise ConfigurationError(
            f"'{type(entity).__name__}' is referenced but has no identity field"
        )
    return getattr(entity, id_field, None)


def reference_shadows(entity: Any) -> Dict[str, Any]:
    """Compute the shadow id values of every set reference on ``entity``."""
    shadows: Dict[str, Any] = {}
    for ref in references(type(entity)).values():
        referenced = getattr(entity, ref.name, None)
        if referenced is None:
            continue
        if ref.array:
            shadows[ref.id_field] = [identity_of(item) for item in referenced]
        else:
            shadows[ref.id_field] = identity_of(referenced)
    return shadows


def dehydrate(
    entity: Any,
    id_field: Optional[str] = None,
    *,
    mutate: bool = True,
    _depth: int = 0,
) -> Any:
    """Convert ``entity`` into a plain document.

    Note that by default the shadow id fields of set references are also
    written back onto ``entity`` itself, so that ``page.author_id`` is
    available right after ``page.author`` was saved. Pass ``mutate=False``
    to leave the entity untouched.

    Args:
        entity: Model instance (or None, which is returned as is)
        id_field: Program-side identity field to store under ``_id``.
            Nested documents are dehydrated without identity aliasing.
        mutate: Whether to write shadow id fields onto ``entity``

    Returns:
        The document to persist
    """
    if entity is None:
        return entity
    if _depth > MAX_DEPTH:
        raise NestingDepthError(
            f"nesting deeper than {MAX_DEPTH} levels in '{type(entity).__name__}', "
            "cyclic nested documents are not supported"
        )

    target = type(entity)
    shadows = reference_shadows(entity)
    if mutate:
        for name, value in shadows.items():
            setattr(entity, name, value)

    plain = _attributes(entity)
    plain.update(shadows)

    if id_field and id_field != STORAGE_ID and id_field in plain:
        plain[STORAGE_ID] = plain.pop(id_field)

    for name in references(target):
        plain.pop(name, None)

    for nested in nested_fields(target):
        value = plain.get(nested.name)
        if value is None:
            continue
        if nested.array:
            plain[nested.name] = [
                dehydrate(item, mutate=mutate, _depth=_depth + 1) for item in value
            ]
        else:
            plain[nested.name] = dehydrate(value, mutate=mutate, _depth=_depth + 1)

    for name in ignored_fields(target):
        plain.pop(name, None)

    return plain


def hydrate(
    target: Type[T],
    plain: Optional[Mapping[str, Any]],
    id_field: Optional[str] = None,
    *,
    _depth: int = 0,
) -> Optional[T]:
    """Build a ``target`` instance from a stored document.

    Identity-typed values are coerced back into ObjectIds and nested
    documents are instantiated recursively. Ignored and reference fields
    are left at their defaults.

    ``id_field`` defaults to the identity field declared on ``target``.
    Nested documents are hydrated without identity aliasing.
    """
    if plain is None:
        return None
    if isinstance(plain, target):
        return plain
    if id_field is None and _depth == 0:
        id_field = identity_field(target)
    if _depth > MAX_DEPTH:
        raise NestingDepthError(
            f"nesting deeper than {MAX_DEPTH} levels in '{target.__name__}', "
            "cyclic nested documents are not supported"
        )

    doc = dict(plain)

    for name in ignored_fields(target):
        doc.pop(name, None)
    for name in references(target):
        doc.pop(name, None)

    if id_field and id_field != STORAGE_ID and STORAGE_ID in doc:
        doc[id_field] = doc.pop(STORAGE_ID)

    coerce_document(target, doc)

    for nested in nested_fields(target):
        value = doc.get(nested.name)
        if value is None:
            continue
        nested_type = nested.resolve()
        if nested.array:
            doc[nested.name] = [
                hydrate(nested_type, item, _depth=_depth + 1) for item in value
            ]
        else:
            doc[nested.name] = hydrate(nested_type, value, _depth=_depth + 1)

    if issubclass(target, BaseModel):
        return target.model_validate(doc)
    return target(**doc)


def translate_filter(query: Optional[Mapping[str, Any]], id_field: Optional[str]) -> Dict[str, Any]:
    """Rewrite a query so the program identity name addresses ``_id``.

    Field keys are renamed at the top level and inside ``$and``/``$or``/
    ``$nor``. Inside ``$expr`` the field paths ``"$<id_field>"`` are renamed
    as well, except within ``$literal``. Plain string values are never
    touched.
    """
    if not query:
        return {}
    if not id_field or id_field == STORAGE_ID:
        return dict(query)
    return _translate_query(query, id_field)


def _rename_path(path: str, id_field: str) -> str:
    if path == id_field:
        return STORAGE_ID
    if path.startswith(id_field + "."):
        return STORAGE_ID + path[len(id_field):]
    return path


def _translate_query(query: Mapping[str, Any], id_field: str) -> Dict[str, Any]:
    translated: Dict[str, Any] = {}
    for key, value in query.items():
        if key in ("$and", "$or", "$nor"):
            translated[key] = [_translate_query(clause, id_field) for clause in value]
        elif key == "$expr":
            translated[key] = _translate_expr(value, id_field)
        elif key.startswith("$"):
            translated[key] = value
        else:
            translated[_rename_path(key, id_field)] = value
    return translated


def _translate_expr(expr: Any, id_field: str) -> Any:
    if isinstance(expr, Mapping):
        return {
            key: value if key == "$literal" else _translate_expr(value, id_field)
            for key, value in expr.items()
        }
    if isinstance(expr, (list, tuple)):
        return [_translate_expr(item, id_field) for item in expr]
    if isinstance(expr, str) and expr.startswith("$") and not expr.startswith("$$"):
        return "$" + _rename_path(expr[1:], id_field)
    return expr
