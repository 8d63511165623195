"""Cursor wrapper that hydrates documents as they are consumed."""

from typing import Any, Callable, Generic, Iterator, List, Mapping, Optional, TypeVar

from pymongo.cursor import Cursor

T = TypeVar("T")


class HydratingCursor(Generic[T]):
    """
    Wraps a pymongo cursor and hydrates each document on the way out.

    Nothing is fetched until the cursor is iterated; batches are then pulled
    from the server as needed. Chaining methods return the same cursor.
    """

    def __init__(self, cursor: Cursor, hydrate: Callable[[Mapping[str, Any]], Optional[T]]):
        self._cursor = cursor
        self._hydrate = hydrate
        self._iterator: Optional[Iterator[Mapping[str, Any]]] = None

    @property
    def cursor(self) -> Cursor:
        """Underlying pymongo cursor (yields raw documents)."""
        return self._cursor

    def __iter__(self) -> "HydratingCursor[T]":
        return self

    def __next__(self) -> T:
        if self._iterator is None:
            self._iterator = iter(self._cursor)
        return self._hydrate(next(self._iterator))

    def __enter__(self) -> "HydratingCursor[T]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def sort(self, *args: Any, **kwargs: Any) -> "HydratingCursor[T]":
        self._cursor.sort(*args, **kwargs)
        return self

    def skip(self, skip: int) -> "HydratingCursor[T]":
        self._cursor.skip(skip)
        return self

    def limit(self, limit: int) -> "HydratingCursor[T]":
        self._cursor.limit(limit)
        return self

    def rewind(self) -> "HydratingCursor[T]":
        self._cursor.rewind()
        self._iterator = None
        return self

    def close(self) -> None:
        self._cursor.close()

    def to_list(self, length: Optional[int] = None) -> List[T]:
        """Exhaust the cursor (or take ``length`` documents) into a list."""
        items: List[T] = []
        while length is None or len(items) < length:
            try:
                items.append(next(self))
            except StopIteration:
                break
        return items
