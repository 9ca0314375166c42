"""
Navigation typée dans une réponse JSON à partir d'un chemin du type
`data.candidates[0].content.parts.0.text`.

Le chemin est d'abord découpé en étapes `FieldStep` / `IndexStep`, puis appliqué
avec des vérifications de type explicites : la première étape impossible lève
une `ResponsePathError` qui indique l'étape fautive.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Union

from .errors import ConfigError, ResponsePathError

_NAME_RE = re.compile(r"[^.\[\]]+")


@dataclass(frozen=True)
class FieldStep:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class IndexStep:
    index: int

    def __str__(self) -> str:
        return f"[{self.index}]"


PathStep = Union[FieldStep, IndexStep]


def parse_response_path(path: str) -> List[PathStep]:
    """Découpe `path` ; les segments purement numériques deviennent des IndexStep."""
    steps: List[PathStep] = []
    i = 0
    while i < len(path):
        ch = path[i]
        if ch == ".":
            i += 1
            continue
        if ch == "[":
            end = path.find("]", i)
            raw = path[i + 1 : end] if end != -1 else ""
            if not raw.isdigit():
                raise ConfigError(f"Chemin de réponse invalide {path!r}: indice attendu en position {i}")
            steps.append(IndexStep(int(raw)))
            i = end + 1
            continue
        match = _NAME_RE.match(path, i)
        if match is None:
            raise ConfigError(f"Chemin de réponse invalide {path!r}: caractère inattendu {ch!r} en position {i}")
        name = match.group(0)
        steps.append(IndexStep(int(name)) if name.isdigit() else FieldStep(name))
        i = match.end()
    return steps


def _describe(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, dict):
        return "un objet"
    if isinstance(value, list):
        return f"un tableau de {len(value)} éléments"
    return type(value).__name__


def resolve_path(data: Any, steps: List[PathStep], path: str = "") -> Any:
    current = data
    for step in steps:
        if isinstance(step, IndexStep):
            if isinstance(current, list):
                if step.index >= len(current):
                    raise ResponsePathError(
                        path, str(step), f"indice {step.index} hors limites (longueur: {len(current)})"
                    )
                current = current[step.index]
            elif isinstance(current, dict) and str(step.index) in current:
                current = current[str(step.index)]
            else:
                raise ResponsePathError(path, str(step), f"tableau attendu, trouvé {_describe(current)}")
        else:
            if not isinstance(current, dict):
                raise ResponsePathError(path, str(step), f"objet attendu, trouvé {_describe(current)}")
            if step.name not in current:
                raise ResponsePathError(path, str(step), f"propriété '{step.name}' absente")
            current = current[step.name]
    return current


def extract_path(data: Any, path: str) -> Any:
    return resolve_path(data, parse_response_path(path), path)
