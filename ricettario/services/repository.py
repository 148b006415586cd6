from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import fields, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from ricettario.core.models import ALL_CATEGORIES, Recipe, Settings, Step
from ricettario.services.kv_store import KeyValueStore

SETTINGS_KEY = "ricettario-settings"
RECIPES_KEY = "ricettario-recipes"
STORAGE_KEYS = (SETTINGS_KEY, RECIPES_KEY)

_SETTINGS_FIELDS = frozenset(f.name for f in fields(Settings))

ReloadListener = Callable[["CatalogRepository"], None]


def _renumber(steps: Iterable[Step]) -> tuple[Step, ...]:
    return tuple(Step(number=index, text=step.text) for index, step in enumerate(steps, start=1))


class CatalogRepository:
    """Owns the canonical in-memory copies of settings and recipes.

    Every mutation goes through the store first and only then replaces the
    in-memory copy, so a failed write leaves the previous state visible.
    Settings and recipes are immutable dataclasses; callers never hold a
    mutable alias of the canonical state.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._lock = threading.RLock()
        self._logger = logging.getLogger(__name__)
        self._listeners: list[ReloadListener] = []
        self._settings = self._read_settings()
        self._recipes = self._read_recipes()

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # Settings -------------------------------------------------------
    def load_settings(self) -> Settings:
        with self._lock:
            return self._settings

    def update_settings(self, partial: Optional[Mapping[str, Any]] = None, **changes: Any) -> Settings:
        merged: dict[str, Any] = dict(partial or {})
        merged.update(changes)
        unknown = set(merged) - _SETTINGS_FIELDS
        if unknown:
            raise ValueError(f"Unknown settings fields: {', '.join(sorted(unknown))}")
        if "ai_providers" in merged:
            merged["ai_providers"] = tuple(merged["ai_providers"])
        with self._lock:
            updated = replace(self._settings, **merged).validate()
            self._store.set(SETTINGS_KEY, updated.as_payload())
            self._settings = updated
        self._logger.info(
            "Settings updated",
            extra={"operation": "update_settings", "fields": ",".join(sorted(merged))},
        )
        return updated

    # Recipes --------------------------------------------------------
    def load_recipes(self) -> list[Recipe]:
        with self._lock:
            return list(self._recipes)

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        with self._lock:
            index = self._index_of(recipe_id)
            return self._recipes[index] if index is not None else None

    def replace_recipes(self, recipes: Iterable[Recipe]) -> None:
        snapshot = list(recipes)
        with self._lock:
            self._write_recipes(snapshot)
            self._recipes = snapshot

    def upsert_recipe(self, recipe: Recipe) -> Recipe:
        with self._lock:
            now = self._clock()
            index = self._index_of(recipe.id) if recipe.id else None
            if index is None:
                stored = replace(
                    recipe,
                    id=self._unique_id(),
                    steps=_renumber(recipe.steps),
                    created_at=now,
                    updated_at=now,
                )
                recipes = [stored, *self._recipes]
                operation = "insert_recipe"
            else:
                existing = self._recipes[index]
                if existing.updated_at is not None and now <= existing.updated_at:
                    now = existing.updated_at + timedelta(microseconds=1)
                stored = replace(
                    recipe,
                    id=existing.id,
                    steps=_renumber(recipe.steps),
                    created_at=existing.created_at or now,
                    updated_at=now,
                )
                recipes = list(self._recipes)
                recipes[index] = stored
                operation = "update_recipe"
            self._write_recipes(recipes)
            self._recipes = recipes
        self._logger.info("Recipe saved", extra={"operation": operation, "recipe_id": stored.id})
        return stored

    def delete_recipe(self, recipe_id: str) -> bool:
        with self._lock:
            index = self._index_of(recipe_id)
            if index is None:
                return False
            recipes = [recipe for recipe in self._recipes if recipe.id != recipe_id]
            self._write_recipes(recipes)
            self._recipes = recipes
        self._logger.info("Recipe deleted", extra={"operation": "delete_recipe", "recipe_id": recipe_id})
        return True

    def search_recipes(self, category: str = ALL_CATEGORIES, term: str = "") -> list[Recipe]:
        needle = term.strip().lower()
        matches = []
        for recipe in self.load_recipes():
            if category != ALL_CATEGORIES and recipe.category != category:
                continue
            if needle and needle not in recipe.title.lower() and needle not in recipe.description.lower():
                continue
            matches.append(recipe)
        return matches

    # Whole-state operations -----------------------------------------
    def replace_all(self, settings: Settings, recipes: Iterable[Recipe]) -> None:
        settings.validate()
        snapshot = list(recipes)
        with self._lock:
            self._store.set_many(
                {
                    SETTINGS_KEY: settings.as_payload(),
                    RECIPES_KEY: [recipe.as_payload() for recipe in snapshot],
                }
            )
            self._settings = settings
            self._recipes = snapshot

    def reinitialize(self) -> None:
        """Rebuild every in-memory view from the store and notify listeners."""
        with self._lock:
            self._settings = self._read_settings()
            self._recipes = self._read_recipes()
            listeners = list(self._listeners)
        self._logger.info(
            "Repository reinitialized",
            extra={"operation": "reinitialize", "recipe_count": len(self._recipes)},
        )
        for listener in listeners:
            listener(self)

    def add_reload_listener(self, listener: ReloadListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_reload_listener(self, listener: ReloadListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # Internal helpers -------------------------------------------------
    def _read_settings(self) -> Settings:
        payload = self._store.get(SETTINGS_KEY)
        if payload is None:
            return Settings()
        try:
            return Settings.from_payload(payload)
        except (KeyError, TypeError, ValueError):
            self._logger.warning(
                "Stored settings are malformed; using defaults",
                extra={"operation": "load_settings", "key": SETTINGS_KEY},
                exc_info=True,
            )
            return Settings()

    def _read_recipes(self) -> list[Recipe]:
        payload = self._store.get(RECIPES_KEY)
        if payload is None:
            return []
        if not isinstance(payload, list):
            self._logger.warning(
                "Stored recipes are not a list; treating as empty",
                extra={"operation": "load_recipes", "key": RECIPES_KEY},
            )
            return []
        recipes: list[Recipe] = []
        for position, item in enumerate(payload):
            try:
                recipes.append(Recipe.from_payload(item))
            except (KeyError, TypeError, ValueError):
                self._logger.warning(
                    "Skipping malformed stored recipe",
                    extra={"operation": "load_recipes", "position": position},
                )
        return recipes

    def _write_recipes(self, recipes: list[Recipe]) -> None:
        self._store.set(RECIPES_KEY, [recipe.as_payload() for recipe in recipes])

    def _index_of(self, recipe_id: str) -> Optional[int]:
        for index, recipe in enumerate(self._recipes):
            if recipe.id == recipe_id:
                return index
        return None

    def _unique_id(self) -> str:
        taken = {recipe.id for recipe in self._recipes}
        candidate = self._id_factory()
        while not candidate or candidate in taken:
            candidate = self._id_factory()
        return candidate


__all__ = ["CatalogRepository", "SETTINGS_KEY", "RECIPES_KEY", "STORAGE_KEYS"]
