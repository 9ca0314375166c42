"""
Aplatissement / reconstruction des documents de traduction.

Un document imbriqué (objets, tableaux, scalaires) devient un dictionnaire plat
`{"chemin.en.points": "valeur"}` et inversement. La reconstruction ne dispose que
des clés : la forme (tableau ou objet) de chaque préfixe est déduite d'un
parcours complet de toutes les clés avant toute construction.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Tuple

from .types import ShapeHint

logger = logging.getLogger(__name__)

_INDEX_RE = re.compile(r"^(0|[1-9][0-9]*)$")
_NUMBER_RE = re.compile(r"^-?(0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?$")
_LITERALS = {"true": True, "false": False, "null": None}

Prefix = Tuple[str, ...]


def _join(path: str, segment: str) -> str:
    return f"{path}.{segment}" if path else segment


def _encode_scalar(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _decode_scalar(value: Any) -> Any:
    """Re-type une feuille : littéraux JSON et nombres qui se ré-encodent à l'identique."""
    if not isinstance(value, str):
        return value
    if value in _LITERALS:
        return _LITERALS[value]
    if not _NUMBER_RE.match(value):
        return value
    try:
        number = int(value) if _INDEX_RE.match(value.lstrip("-")) else float(value)
    except (ValueError, OverflowError):
        return value
    if json.dumps(number) != value:
        return value
    return number


def flatten_object(document: Any, prefix: str = "") -> Dict[str, str]:
    """
    Aplatit un document imbriqué en `{chemin: valeur}`.

    Les objets et tableaux vides ne produisent aucune clé. L'ordre des clés suit
    l'ordre natif du document (parcours en profondeur, sans récursion Python
    pour supporter des imbrications arbitraires).
    """
    flattened: Dict[str, str] = {}
    stack: List[Tuple[str, Any]] = [(prefix, document)]
    while stack:
        path, node = stack.pop()
        if isinstance(node, dict):
            children = [(_join(path, str(key)), value) for key, value in node.items()]
        elif isinstance(node, (list, tuple)):
            children = [(_join(path, str(idx)), value) for idx, value in enumerate(node)]
        else:
            flattened[path] = _encode_scalar(node)
            continue
        stack.extend(reversed(children))
    return flattened


def _scan_children(keys: Iterable[str]) -> Dict[Prefix, Dict[str, None]]:
    children: Dict[Prefix, Dict[str, None]] = {}
    for key in keys:
        parts = key.split(".")
        for depth in range(len(parts)):
            children.setdefault(tuple(parts[:depth]), {})[parts[depth]] = None
    return children


def _hint_for(segments: Iterable[str]) -> ShapeHint:
    indices = []
    for segment in segments:
        if not _INDEX_RE.match(segment):
            # Un seul frère non numérique suffit, même vu après les autres.
            return ShapeHint.OBJECT
        indices.append(int(segment))
    if sorted(indices) != list(range(len(indices))):
        return ShapeHint.OBJECT
    return ShapeHint.ARRAY


def classify_prefixes(keys: Iterable[str]) -> Dict[Prefix, ShapeHint]:
    """Classe chaque préfixe de chemin (tuple de segments) en ARRAY ou OBJECT."""
    return {prefix: _hint_for(segments) for prefix, segments in _scan_children(keys).items()}


def _new_container(hint: ShapeHint, size: int) -> Any:
    if hint is ShapeHint.ARRAY:
        return [None] * size
    return {}


def _assign(container: Any, segment: str, value: Any) -> None:
    if isinstance(container, list):
        container[int(segment)] = value
    else:
        container[segment] = value


def unflatten_object(flat: Dict[str, Any]) -> Any:
    """
    Reconstruit le document imbriqué à partir des seules clés de `flat`.

    Un préfixe n'est un tableau que si tous ses enfants sont des indices
    contigus à partir de 0 ; sinon c'est un objet dont les clés sont les
    segments littéraux (y compris "2"). Ne lève jamais d'exception.
    """
    if not flat:
        return {}

    children = _scan_children(flat.keys())
    hints = {prefix: _hint_for(segments) for prefix, segments in children.items()}

    root = _new_container(hints[()], len(children[()]))
    nodes: Dict[Prefix, Any] = {(): root}

    for key, value in flat.items():
        parts = key.split(".")
        if tuple(parts) in children:
            logger.warning("Clé %r ignorée : le même chemin porte aussi des sous-clés", key)
            continue

        parent = root
        for depth in range(len(parts) - 1):
            prefix = tuple(parts[: depth + 1])
            node = nodes.get(prefix)
            if node is None:
                node = _new_container(hints[prefix], len(children[prefix]))
                _assign(parent, parts[depth], node)
                nodes[prefix] = node
            parent = node

        _assign(parent, parts[-1], _decode_scalar(value))

    return root
