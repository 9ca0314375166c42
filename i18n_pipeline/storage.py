import json
import logging
import os
import tempfile
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import PersistError, StructuralError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _safe_file_name(name: str) -> str:
    return "".join(c if c.isalnum() or c in ("_", "-", ".") else "_" for c in name)


def read_json_document(path: PathLike) -> Any:
    """Lit un document JSON ; toute erreur de lecture ou de syntaxe est fatale (StructuralError)."""
    p = Path(path)
    try:
        content = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise StructuralError(f"Impossible de lire {p}: {exc}") from exc
    try:
        return json.loads(content)
    except ValueError as exc:
        raise StructuralError(f"JSON invalide dans {p}: {exc}") from exc


def read_existing_document(path: PathLike) -> Dict[str, Any]:
    """
    Lit la traduction existante si elle existe.

    Un fichier absent donne `{}` ; un fichier illisible est signalé puis traité
    comme vide, il sera réécrit intégralement à la première sauvegarde.
    """
    p = Path(path)
    if not p.exists():
        return {}
    try:
        data = read_json_document(p)
    except StructuralError as exc:
        logger.warning("Traductions existantes ignorées (%s)", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Traductions existantes ignorées : %s ne contient pas un objet JSON", p)
        return {}
    return data


def write_json(path: PathLike, data: Any) -> Path:
    """
    Écrit `data` en JSON UTF-8 indenté (2 espaces) de manière atomique :
    fichier temporaire dans le même dossier puis `os.replace`.

    Une erreur d'écriture (OSError) est remontée en PersistError.
    """
    p = Path(path)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    except OSError as exc:
        raise PersistError(f"Impossible d'écrire {p}: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, ensure_ascii=False, indent=2))
            f.write("\n")
        os.replace(tmp_name, p)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        raise PersistError(f"Impossible d'écrire {p}: {exc}") from exc
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return p


def write_diagnostic_log(
    log_dir: PathLike,
    label: str,
    error: BaseException,
    request_data: Any = None,
    response_data: Any = None,
    status_code: Optional[int] = None,
) -> List[str]:
    """
    Écrit un journal d'erreur (et la réponse brute si disponible) dans `log_dir`.

    Retourne les chemins absolus créés. Un échec d'écriture est loggé et donne
    une liste vide : le diagnostic ne doit pas masquer l'erreur d'origine.
    """
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    base = f"{_safe_file_name(label)}-{stamp}-{uuid.uuid4().hex[:8]}"
    paths: List[str] = []
    try:
        root = Path(log_dir).expanduser().resolve()
        root.mkdir(parents=True, exist_ok=True)

        lines = [
            f"[{datetime.now(timezone.utc).isoformat()}] {label} error",
            f"Error Message: {error}",
        ]
        if status_code is not None:
            lines.append(f"Response Status: {status_code}")
        if error.__traceback__ is not None:
            lines.append("Stack Trace:")
            lines.extend(traceback.format_exception(type(error), error, error.__traceback__))
        if request_data is not None:
            lines.append(f"Request Data: {json.dumps(request_data, ensure_ascii=False, indent=2, default=str)}")

        error_path = root / f"{base}-error.log"
        error_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        paths.append(str(error_path))

        if response_data is not None:
            if isinstance(response_data, (dict, list)):
                response_path = root / f"{base}-response.json"
                response_path.write_text(json.dumps(response_data, ensure_ascii=False, indent=2), encoding="utf-8")
            else:
                response_path = root / f"{base}-response.txt"
                response_path.write_text(str(response_data), encoding="utf-8")
            paths.append(str(response_path))

        logger.error("Journal d'erreur écrit dans %s", error_path)
    except OSError as exc:
        logger.error("Impossible d'écrire le journal d'erreur: %s", exc)
    return paths
