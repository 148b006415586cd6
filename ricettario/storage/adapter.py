from __future__ import annotations

import abc
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence, Union

Params = Union[Sequence[Any], Mapping[str, Any]]
Row = dict[str, Any]


class StorageAdapter(abc.ABC):
    """Connection facade shared by the key-value store and its migrations."""

    backend: str = "unknown"

    @abc.abstractmethod
    def connect(self) -> None:
        """Open the underlying connection if it is not open yet."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the connection. Safe to call twice."""

    @abc.abstractmethod
    def begin(self) -> None: ...

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...

    @abc.abstractmethod
    def execute(self, sql: str, params: Params = ()) -> Any: ...

    @abc.abstractmethod
    def query(self, sql: str, params: Params = ()) -> list[Row]:
        """Run a SELECT and return rows as dictionaries."""

    @abc.abstractmethod
    def execute_script(self, sql: str) -> None: ...

    @contextmanager
    def transaction(self) -> Iterator["StorageAdapter"]:
        """Commit on success, roll back and re-raise on any error."""
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()


__all__ = ["Params", "Row", "StorageAdapter"]
