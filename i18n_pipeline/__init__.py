"""Pipeline i18n : traduction par IA de catalogues JSON imbriqués, par chunks, avec reprise.

This package provides:
- Aplatissement / reconstruction des documents (flatten)
- Découpage des clés en chunks bornés (chunking)
- Exécution par fenêtres avec retry et backoff (batch)
- Services de traduction (OpenAI-compatibles, Anthropic, Gemini, endpoint custom)
- Un orchestrateur avec sauvegarde incrémentale après chaque chunk
- Une CLI `i18n-ai`
"""

__all__ = [
    "batch",
    "chunking",
    "config",
    "flatten",
    "orchestrator",
    "storage",
    "translation_service",
    "custom_service",
    "types",
    "writer",
]
