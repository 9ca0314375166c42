from typing import List, Optional


class TranslationPipelineError(RuntimeError):
    """Erreur de base de la pipeline de traduction."""


class ConfigError(TranslationPipelineError):
    """Fichier de configuration absent, illisible ou incohérent."""


class TemplateError(ConfigError):
    """Gabarit de requête du provider custom trop profond ou cyclique."""


class StructuralError(TranslationPipelineError):
    """Document source illisible ou qui n'est pas du JSON valide (fatal)."""


class TransformError(TranslationPipelineError):
    """
    Échec du service de traduction (réseau, HTTP 4xx/5xx, réponse inexploitable).

    `artifact_paths` contient les fichiers de diagnostic écrits par le service,
    pour que l'orchestrateur puisse les remonter dans le résumé.
    """

    def __init__(self, message: str, artifact_paths: Optional[List[str]] = None):
        super().__init__(message)
        self.artifact_paths: List[str] = list(artifact_paths or [])


class ResponsePathError(TransformError):
    """Un chemin de réponse configuré n'a pas pu être résolu."""

    def __init__(self, path: str, step: str, reason: str, artifact_paths: Optional[List[str]] = None):
        super().__init__(f"Response path '{path}' failed at '{step}': {reason}", artifact_paths)
        self.path = path
        self.step = step
        self.reason = reason


class ParseError(TranslationPipelineError):
    """La réponse a été reçue mais ne correspond pas aux clés demandées (jamais retentée)."""


class PersistError(TranslationPipelineError):
    """Écriture du document cible impossible (dossier non créable, disque plein, droits)."""
