from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from ricettario.core.models import AIProviderConfig
from ricettario.services.repository import CatalogRepository

KNOWN_PROVIDERS = ("OpenAI", "Google Gemini", "Anthropic Claude", "OpenRouter")
MIN_API_KEY_LENGTH = 6
MIN_MODEL_LENGTH = 3

_logger = logging.getLogger(__name__)


def looks_valid(api_key: str, model: str) -> bool:
    """Offline plausibility check used as the provider verification step."""
    return len(api_key.strip()) >= MIN_API_KEY_LENGTH and len(model.strip()) >= MIN_MODEL_LENGTH


def provider_inputs(repository: CatalogRepository) -> dict[str, dict[str, str]]:
    """Pre-fill values for every known provider, empty when not configured."""
    configured = {provider.name: provider for provider in repository.load_settings().ai_providers}
    inputs: dict[str, dict[str, str]] = {}
    for name in KNOWN_PROVIDERS:
        provider = configured.get(name)
        inputs[name] = {
            "api_key": provider.api_key if provider else "",
            "model": provider.model if provider else "",
        }
    return inputs


def verify_and_save(
    repository: CatalogRepository,
    name: str,
    api_key: str,
    model: str,
    *,
    verifier: Callable[[str, str], bool] = looks_valid,
    id_factory: Optional[Callable[[], str]] = None,
) -> AIProviderConfig:
    """Store the provider, marking it active only when verification passes."""
    active = verifier(api_key, model)
    providers = list(repository.load_settings().ai_providers)
    for index, provider in enumerate(providers):
        if provider.name == name:
            saved = AIProviderConfig(
                id=provider.id, name=name, api_key=api_key, model=model, active=active
            )
            providers[index] = saved
            break
    else:
        new_id = id_factory() if id_factory else str(uuid.uuid4())
        saved = AIProviderConfig(id=new_id, name=name, api_key=api_key, model=model, active=active)
        providers.append(saved)
    repository.update_settings(ai_providers=providers)
    _logger.info(
        "AI provider saved",
        extra={"operation": "verify_provider", "provider": name, "active": active},
    )
    return saved


def remove_provider(repository: CatalogRepository, name: str) -> bool:
    providers = repository.load_settings().ai_providers
    remaining = [provider for provider in providers if provider.name != name]
    if len(remaining) == len(providers):
        return False
    repository.update_settings(ai_providers=remaining)
    _logger.info("AI provider removed", extra={"operation": "remove_provider", "provider": name})
    return True


def active_providers(repository: CatalogRepository) -> list[AIProviderConfig]:
    return [provider for provider in repository.load_settings().ai_providers if provider.active]


__all__ = [
    "KNOWN_PROVIDERS",
    "active_providers",
    "looks_valid",
    "provider_inputs",
    "remove_provider",
    "verify_and_save",
]
