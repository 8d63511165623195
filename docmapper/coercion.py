"""
Type coercion rules for identity-typed values.

ObjectIds are stored natively in BSON, so nothing needs converting on the
way out. On the way in a value may arrive as its 24-character hex form
(JSON payloads, hand-written filters), and these rules turn it back into an
ObjectId.
"""

from typing import Annotated, Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BeforeValidator

from .metadata import MetadataKind, get


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Coerce a single value into an ObjectId. None stays None.

    Accepts the 24-character hex form as ``str`` and the 12-byte binary
    form as ``bytes``.
    """
    if value is None or isinstance(value, ObjectId):
        return value
    if isinstance(value, (str, bytes)):
        try:
            return ObjectId(value)
        except (InvalidId, TypeError) as exc:
            raise ValueError(f"'{value!r}' is not a valid ObjectId") from exc
    raise ValueError(f"cannot convert {type(value).__name__} to ObjectId")


def to_object_ids(values: Any) -> Optional[List[Optional[ObjectId]]]:
    if values is None:
        return None
    return [to_object_id(value) for value in values]


PyObjectId = Annotated[ObjectId, BeforeValidator(to_object_id)]


def coerce_document(target: type, plain: Dict[str, Any]) -> Dict[str, Any]:
    """Apply the inbound rule to every identity-typed field of ``target``.

    Covers declared ObjectId fields as well as generated reference shadow
    fields, which are not pydantic fields and so are never validated.
    The document is modified in place and returned.
    """
    for name, array in get(MetadataKind.OBJECT_IDS, target).items():
        if name not in plain:
            continue
        plain[name] = to_object_ids(plain[name]) if array else to_object_id(plain[name])
    return plain
