import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigError
from .models import DEFAULT_MODELS, get_default_model, validate_model
from .translation_service import api_key_env_var
from .types import CustomProviderConfig, LanguageFile, TranslationConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "translator.config.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "provider": "openai",
    "chunkSize": 50,
    "concurrency": 3,
    "overwrite": False,
    "stopOnError": True,
}


def _language_file(raw: Any, what: str) -> LanguageFile:
    if not isinstance(raw, dict) or not raw.get("path") or not raw.get("code"):
        raise ConfigError(f"Configuration {what} manquante ou invalide (path et code requis)")
    return LanguageFile(path=str(raw["path"]), code=str(raw["code"]))


def _custom_provider(raw: Any) -> Optional[CustomProviderConfig]:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not raw.get("url"):
        raise ConfigError("customProvider doit au minimum définir une url")
    return CustomProviderConfig(
        url=raw["url"],
        method=str(raw.get("method") or "POST").upper(),
        headers=dict(raw.get("headers") or {}),
        body=raw.get("body"),
        response_path=raw.get("responsePath"),
        api_key_env_var=raw.get("apiKeyEnvVar"),
        timeout=float(raw.get("timeout", 120)),
    )


def config_from_dict(data: Dict[str, Any]) -> TranslationConfig:
    """Construit une TranslationConfig depuis un dictionnaire au format du fichier JSON (camelCase)."""
    raw = {**DEFAULT_CONFIG, **data}
    targets = raw.get("targets")
    if not isinstance(targets, list):
        raise ConfigError("targets doit être une liste")

    provider = str(raw["provider"]).lower()
    custom = _custom_provider(raw.get("customProvider"))
    model = raw.get("model")
    if not model and custom is None and provider in DEFAULT_MODELS:
        model = get_default_model(provider)

    try:
        return TranslationConfig(
            source=_language_file(raw.get("source"), "source"),
            targets=[_language_file(t, "cible") for t in targets],
            provider=provider,
            model=model,
            chunk_size=int(raw["chunkSize"]),
            concurrency=int(raw["concurrency"]),
            overwrite=bool(raw["overwrite"]),
            description=raw.get("description"),
            tone=raw.get("tone"),
            translate_all_at_once=bool(raw.get("translateAllAtOnce", False)),
            ignore_keys=[str(k) for k in raw.get("ignoreKeys") or []],
            custom_provider=custom,
            stop_on_error=bool(raw["stopOnError"]),
            chunk_threshold_ratio=float(raw.get("chunkThresholdRatio", 0.8)),
            chunk_threshold_cap=int(raw.get("chunkThresholdCap", 10)),
            delay_between_batches=float(os.getenv("I18N_AI_BATCH_DELAY", raw.get("delayBetweenBatches", 1.0))),
            retry_attempts=int(os.getenv("I18N_AI_RETRY_ATTEMPTS", raw.get("retryAttempts", 3))),
            retry_base_delay=float(os.getenv("I18N_AI_RETRY_DELAY", raw.get("retryDelay", 1.0))),
            log_dir=os.getenv("I18N_AI_LOG_DIR", raw.get("logDir", "i18n_ai_logs")),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Valeur de configuration invalide: {exc}") from exc


def load_config(config_path: Optional[str] = None, overwrite: Optional[bool] = None) -> TranslationConfig:
    path = Path(config_path or DEFAULT_CONFIG_FILE).expanduser().resolve()
    if not path.exists():
        raise ConfigError(f"Fichier de configuration introuvable: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Impossible de charger le fichier de configuration: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Le fichier de configuration doit contenir un objet JSON")

    cfg = config_from_dict(data)
    if overwrite is not None:
        cfg.overwrite = overwrite
    return cfg


def validate_config(cfg: TranslationConfig) -> None:
    if not Path(cfg.source.path).exists():
        raise ConfigError(f"Fichier source introuvable: {cfg.source.path}")
    if not cfg.targets:
        raise ConfigError("Au moins une langue cible doit être définie")
    for target in cfg.targets:
        Path(target.path).expanduser().parent.mkdir(parents=True, exist_ok=True)

    if cfg.chunk_size < 1:
        raise ConfigError(f"chunkSize doit être >= 1 (reçu: {cfg.chunk_size})")
    if cfg.concurrency < 1:
        raise ConfigError(f"concurrency doit être >= 1 (reçu: {cfg.concurrency})")
    if cfg.retry_attempts < 0:
        raise ConfigError(f"retryAttempts doit être >= 0 (reçu: {cfg.retry_attempts})")

    if cfg.custom_provider is not None:
        if cfg.custom_provider.method not in ("GET", "POST"):
            raise ConfigError(f"Méthode HTTP non supportée pour customProvider: {cfg.custom_provider.method}")
        return

    if cfg.provider not in DEFAULT_MODELS:
        raise ConfigError(f"Provider non supporté: {cfg.provider}")
    validate_model(cfg.provider, cfg.model or get_default_model(cfg.provider))

    env_var = api_key_env_var(cfg.provider)
    if not os.getenv(env_var):
        raise ConfigError(f"La variable d'environnement {env_var} est requise")
