import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    max_tokens: int
    output_tokens: int
    is_deprecated: bool = False
    deprecation_date: Optional[str] = None
    replaced_by: Optional[str] = None


MODELS: Dict[str, List[ModelInfo]] = {
    "openai": [
        ModelInfo("gpt-4", "GPT-4", 128000, 4096),
        ModelInfo("gpt-4-turbo-preview", "GPT-4 Turbo", 128000, 4096),
        ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", 16385, 4096),
        ModelInfo(
            "gpt-3.5-turbo-16k",
            "GPT-3.5 Turbo 16K",
            16385,
            4096,
            is_deprecated=True,
            deprecation_date="2024-09-13",
            replaced_by="gpt-3.5-turbo",
        ),
        ModelInfo("gpt-4o", "GPT-4o", 128000, 16384),
        ModelInfo("chatgpt-4o-latest", "ChatGPT-4o", 128000, 16384),
        ModelInfo("gpt-4o-mini", "GPT-4o mini", 128000, 16384),
        ModelInfo("o1", "o1", 128000, 32768),
        ModelInfo("o1-mini", "o1 mini", 128000, 65536),
        ModelInfo("o3-mini", "o3 mini", 128000, 65536),
        ModelInfo("o1-preview", "o1 preview", 128000, 32768, is_deprecated=True, replaced_by="o1"),
    ],
    "anthropic": [
        ModelInfo("claude-3-5-sonnet-latest", "Claude 3.5 Sonnet", 200000, 8192),
        ModelInfo("claude-3-5-haiku-latest", "Claude 3.5 Haiku", 200000, 8192),
        ModelInfo("claude-3-opus-latest", "Claude 3 Opus", 200000, 4096),
        ModelInfo("claude-3-sonnet", "Claude 3 Sonnet", 200000, 4096),
        ModelInfo("claude-3-haiku", "Claude 3 Haiku", 200000, 4096),
    ],
    "gemini": [
        ModelInfo("gemini-2.0-flash", "Gemini 2.0 Flash", 1000000, 8192),
        ModelInfo("gemini-2.0-flash-lite", "Gemini 2.0 Flash-Lite", 1000000, 8192),
        ModelInfo("gemini-1.5-flash", "Gemini 1.5 Flash", 1000000, 8192),
        ModelInfo("gemini-1.5-pro", "Gemini 1.5 Pro", 2000000, 8192),
    ],
    "deepseek": [
        ModelInfo("deepseek-chat", "DeepSeek Chat", 32768, 4096),
    ],
    "xai": [
        ModelInfo("grok-2-1212", "Grok 2", 8192, 2048),
    ],
}

DEFAULT_MODELS: Dict[str, str] = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-latest",
    "gemini": "gemini-2.0-flash",
    "deepseek": "deepseek-chat",
    "xai": "grok-2-1212",
}


def get_default_model(provider: str) -> str:
    try:
        return DEFAULT_MODELS[provider]
    except KeyError:
        raise ValueError(f"Provider inconnu: {provider}") from None


def get_model_info(model: str) -> Optional[ModelInfo]:
    for infos in MODELS.values():
        for info in infos:
            if info.id == model:
                return info
    return None


def validate_model(provider: str, model: str) -> None:
    """Ne bloque jamais : un modèle inconnu ou déprécié produit seulement un warning."""
    info = get_model_info(model)
    if info is None:
        logger.warning(
            "Modèle %r utilisé pour le provider %r : absent de la liste vérifiée, "
            "assurez-vous qu'il existe côté API.",
            model,
            provider,
        )
        return
    if info.is_deprecated:
        since = f" depuis {info.deprecation_date}" if info.deprecation_date else ""
        instead = f" Utilisez plutôt {info.replaced_by}." if info.replaced_by else ""
        logger.warning("Le modèle %r est déprécié%s.%s", model, since, instead)


def list_models(provider: Optional[str] = None) -> Dict[str, List[ModelInfo]]:
    if provider is None:
        return dict(MODELS)
    key = provider.lower()
    if key not in MODELS:
        raise ValueError(f"Provider inconnu: {provider}")
    return {key: MODELS[key]}
