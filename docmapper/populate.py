"""
Reference resolution - loading referenced entities after hydration.

Hydration only restores the shadow id fields of a reference. These helpers
fetch the referenced entities through the repository of the referenced type
and assign them to the logical field.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List

from .errors import UnknownReferenceError
from .metadata import Ref, references

if TYPE_CHECKING:
    from .repositories.base import Repository

logger = logging.getLogger(__name__)


def get_reference(entity: Any, ref_name: str) -> Ref:
    ref = references(type(entity)).get(ref_name)
    if ref is None:
        raise UnknownReferenceError(ref_name, type(entity))
    return ref


def populate(repository: "Repository", entity: Any, ref_name: str) -> None:
    """Resolve one reference of one entity.

    Array references are fetched with a single ``$in`` query; the order of
    the result does not necessarily follow the shadow id list.
    """
    ref = get_reference(entity, ref_name)
    shadow = getattr(entity, ref.id_field, None)
    if shadow is None:
        return

    if ref.array:
        setattr(entity, ref.name, repository.find_many_by_id(shadow))
    else:
        setattr(entity, ref.name, repository.find_by_id(shadow))


def populate_many(repository: "Repository", entities: Iterable[Any], ref_name: str) -> None:
    """Resolve the same reference on many entities with one query.

    Entities whose referenced document no longer exists keep the field unset.
    """
    entities = list(entities)
    if not entities:
        return

    ref = get_reference(entities[0], ref_name)

    ids: List[Any] = []
    seen = set()
    for entity in entities:
        shadow = getattr(entity, ref.id_field, None)
        for value in (shadow or []) if ref.array else [shadow]:
            if value is not None and value not in seen:
                seen.add(value)
                ids.append(value)

    if not ids:
        return

    referenced = repository.find_many_by_id(ids)
    by_id: Dict[Any, Any] = {getattr(item, repository.id_field): item for item in referenced}
    logger.debug(
        f"Populating '{ref_name}' on {len(entities)} entities: "
        f"{len(by_id)}/{len(ids)} referenced documents found"
    )

    for entity in entities:
        shadow = getattr(entity, ref.id_field, None)
        if shadow is None:
            continue
        if ref.array:
            setattr(entity, ref.name, [by_id[value] for value in shadow if value in by_id])
        elif shadow in by_id:
            setattr(entity, ref.name, by_id[shadow])
