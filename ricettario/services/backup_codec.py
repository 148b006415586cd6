"""Backup export/import for the local catalog.

A backup is a single JSON document ``{"settings": ..., "recipes": [...]}``
using the same camelCase payloads the local store persists. Imports are
validated in full before anything is written, so a rejected file never
leaves a partially imported catalog behind.
"""
from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ricettario.core.errors import InvalidShapeError, ParseFailureError
from ricettario.core.models import (
    DEFAULT_LANGUAGE,
    DEFAULT_THEME,
    LEGACY_STORAGE,
    AIProviderConfig,
    Ingredient,
    Recipe,
    RemoteConfig,
    Settings,
    Step,
)
from ricettario.services.repository import RECIPES_KEY, SETTINGS_KEY, CatalogRepository

BACKUP_PREFIX = "ricettario-backup"


def backup_filename(today: Optional[date] = None) -> str:
    day = today or datetime.now(timezone.utc).date()
    return f"{BACKUP_PREFIX}-{day.isoformat()}.json"


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _RemoteConfigDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = ""
    anonKey: str = ""
    connected: bool = False


class _AIProviderDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    apiKey: str = ""
    model: str = ""
    active: bool = False


class _SettingsDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    theme: str = DEFAULT_THEME
    language: str = DEFAULT_LANGUAGE
    dataStorage: str = "local"
    remoteConfig: Optional[_RemoteConfigDoc] = None
    aiProviders: list[_AIProviderDoc] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_remote(cls, data: Any) -> Any:
        if isinstance(data, dict) and "remoteConfig" not in data and "supabaseConfig" in data:
            data = {**data, "remoteConfig": data["supabaseConfig"]}
        return data

    @field_validator("dataStorage", mode="before")
    @classmethod
    def _accept_legacy_storage(cls, value: Any) -> Any:
        return LEGACY_STORAGE.get(value, value) if isinstance(value, str) else value

    @model_validator(mode="after")
    def _loadable(self) -> "_SettingsDoc":
        self.to_settings()
        return self

    def to_settings(self) -> Settings:
        remote = None
        if self.remoteConfig is not None:
            remote = RemoteConfig(
                url=self.remoteConfig.url,
                anon_key=self.remoteConfig.anonKey,
                connected=self.remoteConfig.connected,
            )
            if remote.connected and not remote.has_credentials:
                remote = RemoteConfig(url=remote.url, anon_key=remote.anon_key, connected=False)
        return Settings(
            theme=self.theme,
            language=self.language,
            data_storage=self.dataStorage,  # type: ignore[arg-type]
            remote_config=remote,
            ai_providers=tuple(
                AIProviderConfig(
                    id=item.id,
                    name=item.name,
                    api_key=item.apiKey,
                    model=item.model,
                    active=item.active,
                )
                for item in self.aiProviders
            ),
        ).validate()


class _IngredientDoc(BaseModel):
    item: str
    quantity: str = ""


class _StepDoc(BaseModel):
    number: int
    text: str


class _RecipeDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    title: str
    description: str = ""
    category: str = "primo"
    ingredients: list[_IngredientDoc] = Field(default_factory=list)
    steps: list[_StepDoc] = Field(default_factory=list)
    timeMinutes: int = 0
    difficulty: str = "facile"
    calories: int = 0
    image: Optional[str] = None
    notes: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    def to_recipe(self) -> Recipe:
        return Recipe(
            id=self.id,
            title=self.title,
            description=self.description,
            category=self.category,
            ingredients=tuple(Ingredient(item=i.item, quantity=i.quantity) for i in self.ingredients),
            steps=tuple(Step(number=s.number, text=s.text) for s in self.steps),
            time_minutes=self.timeMinutes,
            difficulty=self.difficulty,
            calories=self.calories,
            image=self.image,
            notes=self.notes,
            created_at=_utc(self.createdAt),
            updated_at=_utc(self.updatedAt),
        )


class BackupDocument(BaseModel):
    """Shape a backup must have before any of it is applied."""

    model_config = ConfigDict(extra="ignore")

    settings: _SettingsDoc
    recipes: list[_RecipeDoc]

    @model_validator(mode="after")
    def _unique_ids(self) -> "BackupDocument":
        seen: set[str] = set()
        for recipe in self.recipes:
            if recipe.id in seen:
                raise ValueError(f"Duplicate recipe id '{recipe.id}'")
            seen.add(recipe.id)
        return self


class BackupCodec:
    """Export, import and clear operations over the local catalog."""

    def __init__(self, repository: CatalogRepository) -> None:
        self._repository = repository
        self._logger = logging.getLogger(__name__)

    def export_document(self) -> dict[str, Any]:
        return {
            "settings": self._repository.load_settings().as_payload(),
            "recipes": [recipe.as_payload() for recipe in self._repository.load_recipes()],
        }

    def export_text(self) -> str:
        return json.dumps(self.export_document(), indent=2, ensure_ascii=False)

    def export_to(self, directory: Path, *, today: Optional[date] = None) -> Path:
        target = Path(directory) / backup_filename(today)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.export_text(), encoding="utf-8")
        self._logger.info("Backup exported", extra={"operation": "export", "path": str(target)})
        return target

    def import_file(self, path: Path) -> None:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseFailureError(
                f"Could not read backup file {path}.",
                title="Import Failed",
                remediation="Choose a readable backup file exported by the application.",
            ) from exc
        self.import_text(text)

    def import_text(self, text: str) -> None:
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as exc:
            self._logger.warning("Backup is not valid JSON", extra={"operation": "import"})
            raise ParseFailureError(
                "The selected file is not valid JSON.",
                title="Import Failed",
                remediation="Choose a backup file exported by the application.",
            ) from exc
        self.import_document(data)

    def import_document(self, data: Any) -> None:
        try:
            document = BackupDocument.model_validate(data)
        except ValidationError as exc:
            self._logger.warning(
                "Backup rejected",
                extra={"operation": "import", "error_count": exc.error_count()},
            )
            raise InvalidShapeError(
                "The backup does not contain valid settings and recipes.",
                title="Import Failed",
                remediation="Both 'settings' and 'recipes' must be present; nothing was changed.",
            ) from exc

        settings = document.settings.to_settings()
        recipes = [item.to_recipe() for item in document.recipes]
        self._repository.replace_all(settings, recipes)
        self._repository.reinitialize()
        self._logger.info(
            "Backup imported",
            extra={"operation": "import", "recipe_count": len(recipes)},
        )

    def local_data(self) -> list[tuple[str, Any]]:
        return list(self._repository.store.items())

    def delete_key(self, key: str) -> None:
        self._repository.store.remove(key)
        self._repository.reinitialize()
        self._logger.info("Stored collection removed", extra={"operation": "delete_key", "key": key})

    def clear(self) -> None:
        self._repository.store.remove_many((SETTINGS_KEY, RECIPES_KEY))
        self._repository.reinitialize()
        self._logger.info("Local data cleared", extra={"operation": "clear"})


__all__ = ["BackupCodec", "BackupDocument", "backup_filename", "BACKUP_PREFIX"]
