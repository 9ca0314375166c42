from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class ShapeHint(enum.Enum):
    """Forme déduite pour un préfixe de chemin lors de la reconstruction."""
    ARRAY = "array"
    OBJECT = "object"


@dataclass
class LanguageFile:
    """Un fichier de traduction (chemin + code langue)."""
    path: str
    code: str


@dataclass
class CustomProviderConfig:
    """Endpoint HTTP de traduction défini par l'utilisateur."""
    url: str
    method: str = "POST"                 # "POST" | "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None                     # objet ou chaîne, avec {{text}}, {{targetLang}}, {{sourceLang}}
    response_path: Optional[str] = None  # ex: "data.translations[0].text"
    api_key_env_var: Optional[str] = None
    timeout: float = 120.0


@dataclass
class TranslationConfig:
    """Configuration de haut niveau pour exécuter la pipeline de traduction."""
    source: LanguageFile
    targets: List[LanguageFile]
    provider: str = "openai"
    model: Optional[str] = None
    chunk_size: int = 50
    concurrency: int = 3
    overwrite: bool = False
    description: Optional[str] = None
    tone: Optional[str] = None
    translate_all_at_once: bool = False
    ignore_keys: List[str] = field(default_factory=list)
    custom_provider: Optional[CustomProviderConfig] = None
    stop_on_error: bool = True
    # Seuil de "chunk substantiel" : min(ratio * chunk_size, cap)
    chunk_threshold_ratio: float = 0.8
    chunk_threshold_cap: int = 10
    delay_between_batches: float = 1.0
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    log_dir: str = "i18n_ai_logs"


@dataclass
class TranslationStats:
    """Compteurs d'une exécution source → cible."""
    target: str = ""
    total_keys: int = 0
    new_keys: int = 0
    skipped_keys: int = 0
    errors: int = 0
    total_chunks: int = 0
    processed_chunks: int = 0
    failed_chunk_index: Optional[int] = None
    error_details: Optional[str] = None
    diagnostics: List[str] = field(default_factory=list)
    status: str = "init"

    @property
    def ok(self) -> bool:
        return self.failed_chunk_index is None and self.errors == 0


@dataclass
class TranslationReport:
    source: str
    targets: List[TranslationStats] = field(default_factory=list)
    # Langues cibles non traitées après un échec avec stop_on_error
    skipped_targets: List[str] = field(default_factory=list)

    @property
    def total_keys(self) -> int:
        return sum(s.total_keys for s in self.targets)

    @property
    def new_keys(self) -> int:
        return sum(s.new_keys for s in self.targets)

    @property
    def skipped_keys(self) -> int:
        return sum(s.skipped_keys for s in self.targets)

    @property
    def errors(self) -> int:
        return sum(s.errors for s in self.targets)

    @property
    def ok(self) -> bool:
        return not self.skipped_targets and all(s.ok for s in self.targets)
