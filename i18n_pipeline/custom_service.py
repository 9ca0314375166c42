import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional, Set

import requests

from .errors import TemplateError, TransformError
from .response_path import parse_response_path, resolve_path
from .storage import write_diagnostic_log
from .translation_service import TranslationService, strip_fences_and_think
from .types import CustomProviderConfig

logger = logging.getLogger(__name__)

MAX_TEMPLATE_DEPTH = 32


def _substitute(template: str, values: Dict[str, str]) -> str:
    for placeholder, value in values.items():
        template = template.replace("{{" + placeholder + "}}", value)
    return template


def render_template(body: Any, values: Dict[str, str], max_depth: int = MAX_TEMPLATE_DEPTH) -> Any:
    """
    Remplace les placeholders `{{...}}` dans un gabarit de requête.

    Parcours borné en profondeur avec détection de cycles : un gabarit plus
    profond que `max_depth` ou auto-référencé lève une TemplateError.
    """
    if isinstance(body, str):
        stripped = body.strip()
        if stripped.startswith(("{", "[")):
            try:
                parsed = json.loads(stripped)
            except ValueError:
                return _substitute(body, values)
            return render_template(parsed, values, max_depth)
        return _substitute(body, values)

    active: Set[int] = set()

    def walk(node: Any, depth: int) -> Any:
        if isinstance(node, str):
            return _substitute(node, values)
        if not isinstance(node, (dict, list)):
            return node
        if depth > max_depth:
            raise TemplateError(f"Gabarit de requête trop profond (> {max_depth} niveaux)")
        if id(node) in active:
            raise TemplateError("Gabarit de requête cyclique")
        active.add(id(node))
        try:
            if isinstance(node, dict):
                return {key: walk(value, depth + 1) for key, value in node.items()}
            return [walk(value, depth + 1) for value in node]
        finally:
            active.discard(id(node))

    return walk(body, 0)


class CustomService(TranslationService):
    """
    Provider HTTP défini par l'utilisateur (URL, méthode, en-têtes, gabarit de corps,
    chemin d'extraction de la réponse).

    En cas d'échec, un journal d'erreur et la réponse brute sont écrits dans
    `log_dir` ; leurs chemins sont portés par la TransformError levée.
    """

    name = "custom"
    model = "custom-model"

    def __init__(self, config: CustomProviderConfig, source_lang: str, log_dir: str = "i18n_ai_logs"):
        self.config = config
        self.source_lang = source_lang
        self.log_dir = log_dir
        self.method = (config.method or "POST").upper()
        self.steps = parse_response_path(config.response_path) if config.response_path else None

    def _headers(self) -> Dict[str, str]:
        headers = dict(self.config.headers or {})
        if self.config.api_key_env_var:
            api_key = os.getenv(self.config.api_key_env_var)
            if api_key and not any(h.lower() == "authorization" for h in headers):
                headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def prepare_request_body(self, text: str, target_lang: str) -> Any:
        if self.config.body is None:
            return {"text": text, "targetLanguage": target_lang, "sourceLanguage": self.source_lang}
        return render_template(
            self.config.body,
            {"text": text, "targetLang": target_lang, "sourceLang": self.source_lang},
        )

    def _extract_translation(self, response: requests.Response) -> str:
        try:
            data: Any = response.json()
        except ValueError:
            data = response.text

        if self.steps is None:
            if isinstance(data, str):
                return strip_fences_and_think(data)
            return json.dumps(data, ensure_ascii=False)

        if isinstance(data, str):
            extracted = strip_fences_and_think(data)
            if not extracted.startswith(("{", "[")):
                return extracted
            try:
                data = json.loads(extracted)
            except ValueError as exc:
                logger.warning("Contenu extrait non parsable en JSON: %s", exc)
                data = extracted

        result = resolve_path(data, self.steps, self.config.response_path or "")
        if result is None:
            raise TransformError("Le résultat de traduction est null et ne peut pas être converti en texte")
        if isinstance(result, (dict, list)):
            return json.dumps(result, ensure_ascii=False)
        return strip_fences_and_think(str(result))

    def _translate_sync(self, text: str, target_lang: str) -> str:
        request_body = self.prepare_request_body(text, target_lang)
        response: Optional[requests.Response] = None
        try:
            response = requests.request(
                self.method,
                self.config.url,
                headers=self._headers(),
                json=request_body if self.method != "GET" else None,
                params=request_body if self.method == "GET" else None,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            return self._extract_translation(response)
        except TransformError as exc:
            exc.artifact_paths.extend(self._log_failure(exc, request_body, response))
            raise
        except requests.RequestException as exc:
            paths = self._log_failure(exc, request_body, response)
            raise TransformError(f"Custom provider translation failed: {exc}", paths) from exc

    def _log_failure(
        self, error: BaseException, request_body: Any, response: Optional[requests.Response]
    ) -> List[str]:
        response_data: Any = None
        status_code: Optional[int] = None
        if response is not None:
            status_code = response.status_code
            try:
                response_data = response.json()
            except ValueError:
                response_data = response.text
        return write_diagnostic_log(
            self.log_dir,
            "custom-provider",
            error,
            request_data=request_body,
            response_data=response_data,
            status_code=status_code,
        )

    async def translate(self, text: str, target_lang: str) -> str:
        return await asyncio.to_thread(self._translate_sync, text, target_lang)
