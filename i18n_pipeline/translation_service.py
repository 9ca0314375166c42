import asyncio
import logging
import os
import re
from typing import Any, Dict, List, Optional

import requests
from openai import OpenAI, OpenAIError

from .errors import ConfigError, TransformError
from .response_path import extract_path

logger = logging.getLogger(__name__)

API_TIMEOUT = int(os.getenv("API_TIMEOUT", "300"))

OPENAI_COMPAT_BASE_URLS: Dict[str, Optional[str]] = {
    "openai": None,
    "deepseek": "https://api.deepseek.com/v1",
    "xai": "https://api.x.ai/v1",
}

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def strip_fences_and_think(raw: str) -> str:
    """Retire les blocs <think> et les balises markdown ``` autour d'une réponse de modèle."""
    s = re.sub(r"<think>[\s\S]*?</think>", "", raw.strip()).strip()
    match = _FENCE_RE.search(s)
    if match:
        return match.group(1).strip()
    return s


def api_key_env_var(provider: str) -> str:
    return f"{provider.upper()}_API_KEY"


def build_system_prompt(target_lang: str, description: Optional[str] = None, tone: Optional[str] = None) -> str:
    parts: List[str] = [
        f"You are a professional translator. Translate the following JSON content to {target_lang}."
    ]
    if description:
        parts.append(f"Context: {description}")
    if tone:
        parts.append(f"Use a {tone} tone in the translations.")
    parts.append(
        "Preserve all JSON structure and keys. Only translate the values. "
        "Keep placeholders such as {name}, {{count}} or %s unchanged. "
        "Return ONLY the translated JSON without any explanation or markdown."
    )
    return "\n".join(parts)


class TranslationService:
    """Capacité de transformation : texte source → texte traduit."""

    name: str = "base"
    model: str = ""

    async def translate(self, text: str, target_lang: str) -> str:
        raise NotImplementedError


class _PromptedService(TranslationService):
    def __init__(
        self,
        api_key: str,
        model: str,
        description: Optional[str] = None,
        tone: Optional[str] = None,
        timeout: float = API_TIMEOUT,
    ):
        if not api_key:
            raise ConfigError(f"{api_key_env_var(self.name)} non défini")
        self.api_key = api_key
        self.model = model
        self.description = description
        self.tone = tone
        self.timeout = timeout

    def _system_prompt(self, target_lang: str) -> str:
        return build_system_prompt(target_lang, self.description, self.tone)

    def _translate_sync(self, text: str, target_lang: str) -> str:
        raise NotImplementedError

    async def translate(self, text: str, target_lang: str) -> str:
        # Les SDK / requests sont bloquants : un thread par appel pour que les
        # fenêtres du BatchProcessor tournent réellement en parallèle.
        return await asyncio.to_thread(self._translate_sync, text, target_lang)


class OpenAICompatService(_PromptedService):
    """openai, deepseek et xai via le SDK `openai` (API chat completions compatible)."""

    def __init__(self, provider: str, api_key: str, model: str, **kwargs: Any):
        self.name = provider
        super().__init__(api_key, model, **kwargs)
        base_url = os.getenv(f"{provider.upper()}_BASE_URL") or OPENAI_COMPAT_BASE_URLS.get(provider)
        # Les retries sont gérés par le BatchProcessor, pas par le SDK.
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=self.timeout, max_retries=0)

    def _translate_sync(self, text: str, target_lang: str) -> str:
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._system_prompt(target_lang)},
                    {"role": "user", "content": text},
                ],
                response_format={"type": "json_object"},
                temperature=0.1,
            )
        except OpenAIError as exc:
            raise TransformError(f"Translation failed ({self.name}): {exc}") from exc

        if not resp.choices or not resp.choices[0].message.content:
            raise TransformError(f"Réponse vide du provider {self.name}")
        return resp.choices[0].message.content.strip()


def _post_json(url: str, timeout: float, **kwargs: Any) -> Any:
    try:
        resp = requests.post(url, timeout=timeout, **kwargs)
        resp.raise_for_status()
        return resp.json()
    except requests.HTTPError as exc:
        body = exc.response.text[:500] if exc.response is not None else ""
        raise TransformError(f"Translation failed: {exc} {body}".strip()) from exc
    except (requests.RequestException, ValueError) as exc:
        raise TransformError(f"Translation failed: {exc}") from exc


class AnthropicService(_PromptedService):
    name = "anthropic"

    def _translate_sync(self, text: str, target_lang: str) -> str:
        data = _post_json(
            ANTHROPIC_URL,
            self.timeout,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": self.model,
                "max_tokens": 4096,
                "system": self._system_prompt(target_lang),
                "messages": [{"role": "user", "content": text}],
                "temperature": 0.1,
            },
        )
        return str(extract_path(data, "content[0].text")).strip()


class GeminiService(_PromptedService):
    name = "gemini"

    def _translate_sync(self, text: str, target_lang: str) -> str:
        data = _post_json(
            GEMINI_URL.format(model=self.model),
            self.timeout,
            params={"key": self.api_key},
            json={
                "systemInstruction": {"parts": [{"text": self._system_prompt(target_lang)}]},
                "contents": [{"role": "user", "parts": [{"text": text}]}],
                "generationConfig": {"temperature": 0.1, "responseMimeType": "application/json"},
            },
        )
        return str(extract_path(data, "candidates[0].content.parts[0].text")).strip()


SERVICES = {
    "openai": OpenAICompatService,
    "deepseek": OpenAICompatService,
    "xai": OpenAICompatService,
    "anthropic": AnthropicService,
    "gemini": GeminiService,
}
