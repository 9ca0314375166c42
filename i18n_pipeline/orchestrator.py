import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .batch import BatchConfig, BatchProcessor, BatchResponse
from .chunking import Chunk, chunk_object, top_level_key
from .custom_service import CustomService
from .errors import ConfigError, ParseError, PersistError, TransformError
from .flatten import flatten_object
from .models import get_default_model
from .storage import read_existing_document, read_json_document
from .translation_service import (
    SERVICES,
    OpenAICompatService,
    TranslationService,
    api_key_env_var,
    strip_fences_and_think,
)
from .types import TranslationConfig, TranslationReport, TranslationStats
from .writer import PART_KEY_RE, persist_translations, reassemble_parts

logger = logging.getLogger(__name__)

_LINE_QUOTES_RE = re.compile(r"^[\"']|[\"'],?$")


def build_service(cfg: TranslationConfig) -> TranslationService:
    """Instancie le service de traduction ; `customProvider` est prioritaire sur `provider`."""
    if cfg.custom_provider is not None:
        return CustomService(cfg.custom_provider, cfg.source.code, log_dir=cfg.log_dir)

    service_cls = SERVICES.get(cfg.provider)
    if service_cls is None:
        raise ConfigError(f"Provider non supporté: {cfg.provider}")
    api_key = os.getenv(api_key_env_var(cfg.provider), "")
    model = cfg.model or get_default_model(cfg.provider)
    if service_cls is OpenAICompatService:
        return OpenAICompatService(cfg.provider, api_key, model, description=cfg.description, tone=cfg.tone)
    return service_cls(api_key, model, description=cfg.description, tone=cfg.tone)


def should_ignore_key(key: str, ignore_keys: Iterable[str]) -> bool:
    """Vrai si `key` est une clé ignorée ou une descendante (frontière de segment, pas simple préfixe)."""
    return any(key == ignored or key.startswith(ignored + ".") for ignored in ignore_keys)


@dataclass
class KeySelection:
    # Clés conservées telles quelles (ignorées ou déjà traduites)
    preserved: Dict[str, str] = field(default_factory=dict)
    worklist: Dict[str, str] = field(default_factory=dict)
    skipped: int = 0


def select_keys(
    flat_source: Dict[str, str],
    existing: Dict[str, str],
    ignore_keys: Iterable[str] = (),
    overwrite: bool = False,
) -> KeySelection:
    ignore_keys = list(ignore_keys)
    selection = KeySelection()
    for key, value in flat_source.items():
        current = existing.get(key)
        if should_ignore_key(key, ignore_keys):
            selection.skipped += 1
            selection.preserved[key] = current if current else value
            continue
        if current and not overwrite:
            selection.skipped += 1
            selection.preserved[key] = current
            continue
        selection.worklist[key] = value
    return selection


def serialize_unit(entries: Dict[str, str]) -> str:
    return json.dumps(entries, ensure_ascii=False, indent=2)


def _extract_json_object(s: str) -> Optional[str]:
    start = s.find("{")
    end = s.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return s[start : end + 1]


def _clean_line_value(value: str) -> str:
    return _LINE_QUOTES_RE.sub("", value.strip()).strip()


def _parse_lines(text: str, requested: List[str]) -> Dict[str, str]:
    lines = [line for line in text.splitlines() if line.strip()]
    by_key: Dict[str, str] = {}
    for line in lines:
        key, sep, value = line.partition(":")
        if sep:
            by_key[key.strip().strip("\"'")] = _clean_line_value(value)
    if any(key in by_key for key in requested):
        return by_key
    # Aucune clé reconnue : appariement par position dans l'ordre des clés demandées.
    return {
        key: _clean_line_value(line.partition(":")[2] if ":" in line else line)
        for key, line in zip(requested, lines)
    }


def _base_key(key: str, wanted: Optional[Iterable[str]] = None) -> str:
    if wanted is not None and key in wanted:
        return key
    match = PART_KEY_RE.match(key)
    return match.group("base") if match else key


def parse_translation_reply(reply: str, requested: List[str]) -> Dict[str, str]:
    """
    Associe la réponse du provider aux clés demandées.

    La réponse est d'abord lue comme un objet JSON (éventuellement entouré de
    markdown ou imbriqué), sinon comme des lignes `clé: valeur`. Une clé absente
    ou vide est signalée et omise ; si aucune clé ne correspond, ParseError.
    """
    cleaned = strip_fences_and_think(reply or "")
    candidate = _extract_json_object(cleaned) or cleaned
    try:
        data = json.loads(candidate)
    except ValueError:
        data = None

    if isinstance(data, dict):
        answers = flatten_object(data)
    else:
        answers = _parse_lines(cleaned, requested)

    wanted = set(requested)
    translated: Dict[str, str] = {}
    for key, value in answers.items():
        if _base_key(key, wanted) not in wanted:
            continue
        if not isinstance(value, str) or not value.strip() or value == "null":
            continue
        translated[key] = value

    answered = {_base_key(key, wanted) for key in translated}
    if requested and not answered:
        raise ParseError(f"Aucune des {len(requested)} clés demandées n'a été retrouvée dans la réponse")
    for key in requested:
        if key not in answered:
            logger.warning("Clé %r absente ou vide dans la réponse, ignorée", key)
    return translated


def _ordered(merged: Dict[str, str], flat_source: Dict[str, str]) -> Dict[str, str]:
    """Ordre de sortie : celui de la source, puis les clés propres à la cible."""
    ordered = {key: merged[key] for key in flat_source if key in merged}
    for key, value in merged.items():
        ordered.setdefault(key, value)
    return ordered


def _whole_worklist_chunk(worklist: Dict[str, str]) -> Chunk:
    entries = list(worklist.items())
    return Chunk(index=1, entries=entries, prefix=top_level_key(entries[0][0]))


async def translate_file(
    source_path: str,
    target_path: str,
    target_lang: str,
    cfg: TranslationConfig,
    service: TranslationService,
) -> TranslationStats:
    """
    Traduit un couple source → cible.

    Étapes: lecture source → lecture cible existante → sélection des clés →
    découpage → traduction chunk par chunk → fusion + sauvegarde après chaque
    chunk réussi. Au premier chunk en échec, le document s'arrête là : la
    progression déjà fusionnée reste sur disque et l'indice du chunk est remonté.
    """
    stats = TranslationStats(target=target_lang)
    t0 = time.time()

    stats.status = "read_source"
    flat_source = flatten_object(read_json_document(source_path))
    stats.total_keys = len(flat_source)

    stats.status = "read_existing_target"
    existing = flatten_object(read_existing_document(target_path))

    stats.status = "select_keys"
    selection = select_keys(flat_source, existing, cfg.ignore_keys, cfg.overwrite)
    stats.skipped_keys = selection.skipped
    merged: Dict[str, str] = {**existing, **selection.preserved}

    if not selection.worklist:
        logger.info("[%s] Aucune nouvelle clé à traduire", target_lang)
        try:
            persist_translations(target_path, _ordered(merged, flat_source))
        except PersistError as exc:
            stats.errors += 1
            stats.error_details = str(exc)
            stats.status = "failed"
            logger.error("[%s] Sauvegarde impossible: %s", target_lang, exc)
            return stats
        stats.status = "done"
        return stats

    stats.status = "partition"
    if cfg.translate_all_at_once:
        chunks = [_whole_worklist_chunk(selection.worklist)]
    else:
        chunks = chunk_object(
            selection.worklist,
            cfg.chunk_size,
            threshold_ratio=cfg.chunk_threshold_ratio,
            threshold_cap=cfg.chunk_threshold_cap,
        )
    stats.total_chunks = len(chunks)
    logger.info(
        "[%s] %d clés à traduire, découpées en %d chunk(s)", target_lang, len(selection.worklist), len(chunks)
    )

    async def translate_chunk(chunk: Chunk) -> Dict[str, str]:
        reply = await service.translate(serialize_unit(chunk.as_dict()), target_lang)
        return parse_translation_reply(reply, chunk.keys())

    def record_failure(chunk: Chunk, error: BaseException) -> None:
        stats.errors += 1
        stats.failed_chunk_index = chunk.index
        stats.error_details = str(error)
        if isinstance(error, TransformError):
            stats.diagnostics.extend(error.artifact_paths)

    def merge_and_persist(index: int, response: BatchResponse) -> bool:
        chunk = chunks[index]
        if not response.success:
            record_failure(chunk, response.error)
            logger.error(
                "[%s] Échec du chunk %d/%d après %d retry: %s",
                target_lang,
                chunk.index,
                len(chunks),
                response.retry_count,
                response.error,
            )
            return False

        translated = reassemble_parts(response.result or {}, chunk.keys())
        merged.update(translated)
        try:
            persist_translations(target_path, _ordered(merged, flat_source))
        except PersistError as exc:
            record_failure(chunk, exc)
            logger.error("[%s] Chunk %d/%d traduit mais non sauvegardé: %s", target_lang, chunk.index, len(chunks), exc)
            return False
        stats.new_keys += len(translated)
        stats.processed_chunks += 1
        logger.info(
            "[%s] Chunk %d/%d traduit (%d clés) → %s",
            target_lang,
            chunk.index,
            len(chunks),
            len(translated),
            target_path,
        )
        return True

    stats.status = "translate"
    processor = BatchProcessor(
        BatchConfig(
            max_concurrent=cfg.concurrency,
            delay_between_batches=cfg.delay_between_batches,
            retry_attempts=cfg.retry_attempts,
            retry_base_delay=cfg.retry_base_delay,
        )
    )
    # ParseError et ConfigError ne changent pas d'une tentative à l'autre
    await processor.process_batch(
        chunks, translate_chunk, on_outcome=merge_and_persist, no_retry=(ParseError, ConfigError)
    )

    stats.status = "failed" if stats.failed_chunk_index is not None else "done"
    logger.debug("[%s] Terminé en %.1fs (statut: %s)", target_lang, time.time() - t0, stats.status)
    return stats


async def translate_files(cfg: TranslationConfig, service: Optional[TranslationService] = None) -> TranslationReport:
    """
    Orchestrateur principal : traduit la source vers chaque langue cible, dans l'ordre.

    Une StructuralError (source illisible) interrompt tout. Un chunk en échec
    arrête la langue courante ; avec `stop_on_error` les langues restantes sont
    sautées, sinon on passe à la suivante.
    """
    service = service or build_service(cfg)
    report = TranslationReport(source=cfg.source.path)

    for position, target in enumerate(cfg.targets):
        logger.info("Traitement de la langue cible: %s", target.code)
        stats = await translate_file(cfg.source.path, target.path, target.code, cfg, service)
        report.targets.append(stats)
        if not stats.ok and cfg.stop_on_error:
            report.skipped_targets = [t.code for t in cfg.targets[position + 1 :]]
            if report.skipped_targets:
                logger.warning("Arrêt sur erreur, langues non traitées: %s", ", ".join(report.skipped_targets))
            break

    return report


def format_summary(report: TranslationReport) -> str:
    lines = [
        "Résumé de la traduction :",
        f"Clés totales: {report.total_keys}",
        f"Nouvelles traductions: {report.new_keys}",
        f"Clés ignorées/existantes: {report.skipped_keys}",
        f"Erreurs: {report.errors}",
    ]
    for stats in report.targets:
        line = f"  [{stats.target}] chunks {stats.processed_chunks}/{stats.total_chunks}"
        if stats.failed_chunk_index is not None:
            line += f" - échec au chunk {stats.failed_chunk_index}: {stats.error_details}"
        elif stats.error_details:
            line += f" - échec: {stats.error_details}"
        lines.append(line)
        for path in stats.diagnostics:
            lines.append(f"    journal: {path}")
    if report.skipped_targets:
        lines.append(f"Langues non traitées: {', '.join(report.skipped_targets)}")
    return "\n".join(lines)
