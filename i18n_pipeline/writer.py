import re
from pathlib import Path
from typing import Any, Dict, Iterable, Union

from .flatten import unflatten_object
from .storage import write_json

PART_KEY_RE = re.compile(r"^(?P<base>.+?)_part\d+$")


def reassemble_parts(translated: Dict[str, Any], requested: Iterable[str]) -> Dict[str, Any]:
    """
    Recolle les fragments `<clé>_partN` renvoyés par certains providers.

    Seules les clés de la réponse sont concernées : un fragment n'est recollé
    que si `<clé>` a été demandée et que le fragment lui-même ne l'a pas été.
    Les fragments sont concaténés dans l'ordre de la réponse et remplacent la
    valeur simple de `<clé>` si elle est aussi présente.
    """
    wanted = set(requested)
    assembled: Dict[str, Any] = {}
    fragments: Dict[str, str] = {}
    for key, value in translated.items():
        match = None if key in wanted else PART_KEY_RE.match(key)
        if match is None or match.group("base") not in wanted:
            if key not in fragments:
                assembled[key] = value
            continue
        base = match.group("base")
        fragments[base] = fragments.get(base, "") + str(value)
        assembled[base] = fragments[base]
    return assembled


def persist_translations(target_path: Union[str, Path], flat: Dict[str, Any]) -> Path:
    """Reconstruit le document complet à partir des clés fusionnées et l'écrit atomiquement."""
    return write_json(target_path, unflatten_object(flat))
