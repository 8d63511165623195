"""
Base repository - CRUD for one model class bound to one MongoDB collection.

Every document read through the repository is hydrated into the model and
every entity written is dehydrated first. The raw pymongo collection stays
available as ``repository.collection`` for anything else (its results are
plain documents).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, Type, TypeVar

from pymongo.collection import Collection
from pymongo.database import Database

from docmapper import populate as resolver
from docmapper.coercion import to_object_id
from docmapper.errors import MissingIdentityError
from docmapper.indexing import compile_indexes
from docmapper.mapping import STORAGE_ID, dehydrate, hydrate, translate_filter
from docmapper.metadata import MetadataKind, get, identity_field, index_specs

from .cursor import HydratingCursor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repository(Generic[T]):
    """
    Generic MongoDB repository.

    Usage:
        class UserRepository(Repository[User]):
            def __init__(self, db: Database):
                super().__init__(db, "users", User)

            def find_all_by_name(self, name: str) -> List[User]:
                return self.find({"name": name}).to_list()
    """

    def __init__(
        self,
        db: Database,
        collection_name: str,
        model: Type[T],
        *,
        auto_index: Optional[bool] = None,
    ):
        self.db = db
        self.collection_name = collection_name
        self.collection: Collection = db[collection_name]
        self.model = model

        self.id_field: str = identity_field(model)
        if not self.id_field:
            raise MissingIdentityError(model)

        if auto_index is None:
            from docmapper.config import settings

            auto_index = settings.AUTO_INDEX
        if auto_index:
            self.create_indexes(force_background=True)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def dehydrate(self, entity: T) -> Dict[str, Any]:
        return dehydrate(entity, self.id_field)

    def hydrate(self, plain: Optional[Mapping[str, Any]]) -> Optional[T]:
        return hydrate(self.model, plain, self.id_field)

    def _filter(self, query: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return translate_filter(query, self.id_field)

    def _id_value(self, value: Any) -> Any:
        if self.id_field in get(MetadataKind.OBJECT_IDS, self.model):
            return to_object_id(value)
        return value

    def _identity(self, entity: T) -> Any:
        return getattr(entity, self.id_field, None)

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    def create_indexes(self, force_background: bool = False) -> Optional[List[str]]:
        """
        Create every index declared on the model.

        Args:
            force_background: Build all indexes in the background so other
                operations are not blocked (used by auto_index)

        Returns:
            Names of the created indexes, or None when none are declared
        """
        specs = index_specs(self.model)
        if not specs:
            return None

        logger.debug(
            f"Creating {len(specs)} indexes on '{self.collection_name}'",
            extra={"collection": self.collection_name},
        )
        return self.collection.create_indexes(compile_indexes(specs, force_background))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, entity: T) -> None:
        """Insert ``entity`` and write the assigned identity back onto it."""
        plain = self.dehydrate(entity)
        if plain.get(STORAGE_ID) is None:
            plain.pop(STORAGE_ID, None)
        result = self.collection.insert_one(plain)
        setattr(entity, self.id_field, result.inserted_id)

    def update(self, entity: T, **options: Any) -> None:
        """Replace the stored document of ``entity``. Options go to replace_one."""
        plain = self.dehydrate(entity)
        self.collection.replace_one({STORAGE_ID: self._identity(entity)}, plain, **options)

    def save(self, entity: T) -> None:
        """Insert when the entity has no identity yet, update otherwise."""
        if not self._identity(entity):
            self.insert(entity)
        else:
            self.update(entity)

    def remove(self, entity: T) -> None:
        self.collection.delete_one({STORAGE_ID: self._identity(entity)})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_one(self, filter: Optional[Mapping[str, Any]] = None) -> Optional[T]:
        return self.hydrate(self.collection.find_one(self._filter(filter)))

    def find_by_id(self, id: Any) -> Optional[T]:
        return self.find_one({STORAGE_ID: self._id_value(id)})

    def find_many_by_id(self, ids: Iterable[Any]) -> List[T]:
        return self.find({STORAGE_ID: {"$in": [self._id_value(id) for id in ids]}}).to_list()

    def find(
        self, filter: Optional[Mapping[str, Any]] = None, **options: Any
    ) -> HydratingCursor[T]:
        """
        Run ``collection.find`` and hydrate results lazily.

        Returns:
            HydratingCursor over model instances; options (projection, sort,
            limit, ...) are passed to pymongo as they are
        """
        return HydratingCursor(self.collection.find(self._filter(filter), **options), self.hydrate)

    def find_one_and_update(
        self,
        filter: Optional[Mapping[str, Any]],
        update: Any,
        **options: Any,
    ) -> Optional[T]:
        """Atomic update; pass return_document=ReturnDocument.AFTER for the post-image."""
        return self.hydrate(
            self.collection.find_one_and_update(self._filter(filter), update, **options)
        )

    def find_one_and_delete(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        **options: Any,
    ) -> Optional[T]:
        return self.hydrate(self.collection.find_one_and_delete(self._filter(filter), **options))

    def count(self, filter: Optional[Mapping[str, Any]] = None, *, estimate: bool = False) -> int:
        """
        Count documents matching ``filter`` (the whole collection by default).

        ``estimate`` uses the collection metadata instead of scanning and is
        only honoured without a filter.
        """
        if estimate and not filter:
            return self.collection.estimated_document_count()
        return self.collection.count_documents(self._filter(filter))

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def populate(self, entity: Any, ref_name: str) -> None:
        """Load the entity (or entities) referenced by ``entity.<ref_name>``.

        Call this on the repository of the *referenced* model.
        """
        resolver.populate(self, entity, ref_name)

    def populate_many(self, entities: Iterable[Any], ref_name: str) -> None:
        """Like populate, for many entities with a single query."""
        resolver.populate_many(self, entities, ref_name)
