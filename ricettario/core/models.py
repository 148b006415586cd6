from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Optional

DataStorage = Literal["local", "remote"]
DATA_STORAGES = ("local", "remote")

DEFAULT_THEME = "modern-blue"
DEFAULT_LANGUAGE = "it"
LANGUAGES = ("it", "en", "es", "pl", "cs", "fr", "is")
ALL_CATEGORIES = "tutte"
CATEGORIES = (
    ALL_CATEGORIES,
    "antipasto",
    "primo",
    "secondo",
    "contorno",
    "dolce",
    "bevanda",
    "veg",
    "gluten-free",
    "light",
)
DIFFICULTIES = ("facile", "media", "difficile")

# Older backups written by the web version of the catalog
LEGACY_STORAGE = {"localStorage": "local", "supabase": "remote"}


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"Timestamp must be a string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _require_str(payload: Mapping[str, Any], key: str, default: Optional[str] = None) -> str:
    value = payload.get(key, default)
    if not isinstance(value, str):
        raise ValueError(f"Field '{key}' must be a string")
    return value


def _optional_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Field '{key}' must be a string")
    return value


def _require_int(payload: Mapping[str, Any], key: str, default: int = 0) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Field '{key}' must be a number")
    return int(value)


@dataclass(slots=True, frozen=True)
class RemoteConfig:
    url: str = ""
    anon_key: str = ""
    connected: bool = False

    @classmethod
    def disconnected(cls) -> "RemoteConfig":
        return cls(url="", anon_key="", connected=False)

    @property
    def has_credentials(self) -> bool:
        return bool(self.url.strip()) and bool(self.anon_key.strip())

    def as_payload(self) -> dict[str, Any]:
        return {"url": self.url, "anonKey": self.anon_key, "connected": self.connected}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteConfig":
        if not isinstance(payload, Mapping):
            raise ValueError("Remote config must be an object")
        connected = payload.get("connected", False)
        if not isinstance(connected, bool):
            raise ValueError("Field 'connected' must be a boolean")
        config = cls(
            url=_require_str(payload, "url", ""),
            anon_key=_require_str(payload, "anonKey", ""),
            connected=connected,
        )
        # A connected flag without credentials cannot be trusted.
        if config.connected and not config.has_credentials:
            return cls(url=config.url, anon_key=config.anon_key, connected=False)
        return config


@dataclass(slots=True, frozen=True)
class AIProviderConfig:
    id: str
    name: str
    api_key: str
    model: str
    active: bool = False

    def as_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "apiKey": self.api_key,
            "model": self.model,
            "active": self.active,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AIProviderConfig":
        if not isinstance(payload, Mapping):
            raise ValueError("AI provider must be an object")
        return cls(
            id=_require_str(payload, "id"),
            name=_require_str(payload, "name"),
            api_key=_require_str(payload, "apiKey", ""),
            model=_require_str(payload, "model", ""),
            active=bool(payload.get("active", False)),
        )


@dataclass(slots=True, frozen=True)
class Settings:
    theme: str = DEFAULT_THEME
    language: str = DEFAULT_LANGUAGE
    data_storage: DataStorage = "local"
    remote_config: Optional[RemoteConfig] = None
    ai_providers: tuple[AIProviderConfig, ...] = ()

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "theme": self.theme,
            "language": self.language,
            "dataStorage": self.data_storage,
            "aiProviders": [provider.as_payload() for provider in self.ai_providers],
        }
        if self.remote_config is not None:
            payload["remoteConfig"] = self.remote_config.as_payload()
        return payload

    def validate(self) -> "Settings":
        """Return self, or raise ValueError for values the loader would reject.

        Shared by the store loader, ``update_settings`` and backup import so
        anything that can be written can also be read back.
        """
        if not isinstance(self.theme, str) or not self.theme.strip():
            raise ValueError("Theme must be a non-empty string")
        if self.language not in LANGUAGES:
            raise ValueError(f"Unsupported language '{self.language}'")
        if self.data_storage not in DATA_STORAGES:
            raise ValueError(f"Unsupported data storage '{self.data_storage}'")
        if self.remote_config is not None and not isinstance(self.remote_config, RemoteConfig):
            raise ValueError("Remote config must be a RemoteConfig")
        for provider in self.ai_providers:
            if not isinstance(provider, AIProviderConfig):
                raise ValueError("AI providers must be AIProviderConfig entries")
            if not provider.id or not provider.name:
                raise ValueError("AI providers need an id and a name")
        return self

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Settings":
        if not isinstance(payload, Mapping):
            raise ValueError("Settings must be an object")
        language = _require_str(payload, "language", DEFAULT_LANGUAGE)
        storage = _require_str(payload, "dataStorage", "local")
        storage = LEGACY_STORAGE.get(storage, storage)
        raw_remote = payload.get("remoteConfig", payload.get("supabaseConfig"))
        remote = RemoteConfig.from_payload(raw_remote) if raw_remote is not None else None
        raw_providers = payload.get("aiProviders", [])
        if not isinstance(raw_providers, list):
            raise ValueError("Field 'aiProviders' must be a list")
        return cls(
            theme=_require_str(payload, "theme", DEFAULT_THEME),
            language=language,
            data_storage=storage,  # type: ignore[arg-type]
            remote_config=remote,
            ai_providers=tuple(AIProviderConfig.from_payload(item) for item in raw_providers),
        ).validate()


@dataclass(slots=True, frozen=True)
class Ingredient:
    item: str
    quantity: str = ""

    def as_payload(self) -> dict[str, Any]:
        return {"item": self.item, "quantity": self.quantity}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Ingredient":
        if not isinstance(payload, Mapping):
            raise ValueError("Ingredient must be an object")
        return cls(item=_require_str(payload, "item"), quantity=str(payload.get("quantity", "")))


@dataclass(slots=True, frozen=True)
class Step:
    number: int
    text: str

    def as_payload(self) -> dict[str, Any]:
        return {"number": self.number, "text": self.text}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Step":
        if not isinstance(payload, Mapping):
            raise ValueError("Step must be an object")
        return cls(number=_require_int(payload, "number"), text=_require_str(payload, "text"))


@dataclass(slots=True, frozen=True)
class Recipe:
    title: str
    description: str = ""
    category: str = "primo"
    ingredients: tuple[Ingredient, ...] = ()
    steps: tuple[Step, ...] = ()
    time_minutes: int = 0
    difficulty: str = "facile"
    calories: int = 0
    image: Optional[str] = None
    notes: Optional[str] = None
    id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "ingredients": [ingredient.as_payload() for ingredient in self.ingredients],
            "steps": [step.as_payload() for step in self.steps],
            "timeMinutes": self.time_minutes,
            "difficulty": self.difficulty,
            "calories": self.calories,
        }
        if self.image is not None:
            payload["image"] = self.image
        if self.notes is not None:
            payload["notes"] = self.notes
        if self.created_at is not None:
            payload["createdAt"] = format_timestamp(self.created_at)
        if self.updated_at is not None:
            payload["updatedAt"] = format_timestamp(self.updated_at)
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Recipe":
        if not isinstance(payload, Mapping):
            raise ValueError("Recipe must be an object")
        raw_ingredients = payload.get("ingredients", [])
        raw_steps = payload.get("steps", [])
        if not isinstance(raw_ingredients, list) or not isinstance(raw_steps, list):
            raise ValueError("Ingredients and steps must be lists")
        ingredients = tuple(Ingredient.from_payload(item) for item in raw_ingredients)
        steps = tuple(Step.from_payload(step) for step in raw_steps)
        created = payload.get("createdAt")
        updated = payload.get("updatedAt")
        return cls(
            id=_require_str(payload, "id"),
            title=_require_str(payload, "title"),
            description=_require_str(payload, "description", ""),
            category=_require_str(payload, "category", "primo"),
            ingredients=ingredients,
            steps=steps,
            time_minutes=_require_int(payload, "timeMinutes"),
            difficulty=_require_str(payload, "difficulty", "facile"),
            calories=_require_int(payload, "calories"),
            image=_optional_str(payload, "image"),
            notes=_optional_str(payload, "notes"),
            created_at=parse_timestamp(created) if created is not None else None,
            updated_at=parse_timestamp(updated) if updated is not None else None,
        )


__all__ = [
    "ALL_CATEGORIES",
    "AIProviderConfig",
    "CATEGORIES",
    "DEFAULT_LANGUAGE",
    "DEFAULT_THEME",
    "DIFFICULTIES",
    "Ingredient",
    "LANGUAGES",
    "Recipe",
    "RemoteConfig",
    "Settings",
    "Step",
    "format_timestamp",
    "parse_timestamp",
]
