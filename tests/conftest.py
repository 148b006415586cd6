from __future__ import annotations

import itertools
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator

import pytest
from PySide6 import QtWidgets

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from ricettario.services.kv_store import KeyValueStore  # noqa: E402
from ricettario.services.repository import CatalogRepository  # noqa: E402


@pytest.fixture(scope="session")
def qt_app() -> Iterator[QtWidgets.QApplication]:
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    yield app


@pytest.fixture
def store(tmp_path: Path) -> Iterator[KeyValueStore]:
    kv = KeyValueStore.open(tmp_path / "ricettario.sqlite")
    yield kv
    kv.close()


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def id_factory() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"recipe-{next(counter)}"


@pytest.fixture
def repository(store: KeyValueStore, clock: FakeClock, id_factory: Callable[[], str]) -> CatalogRepository:
    return CatalogRepository(store, clock=clock, id_factory=id_factory)
