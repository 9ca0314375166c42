from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass
class Chunk:
    """Sous-séquence ordonnée de paires (clé, valeur) envoyée en une seule requête."""
    index: int
    entries: List[Tuple[str, str]] = field(default_factory=list)
    prefix: str = ""

    def __len__(self) -> int:
        return len(self.entries)

    def keys(self) -> List[str]:
        return [key for key, _ in self.entries]

    def as_dict(self) -> Dict[str, str]:
        return dict(self.entries)


def top_level_key(key: str) -> str:
    return key.split(".", 1)[0]


def substantial_threshold(max_keys_per_chunk: int, ratio: float = 0.8, cap: int = 10) -> float:
    """Taille à partir de laquelle un changement de préfixe ouvre un nouveau chunk."""
    return min(max_keys_per_chunk * ratio, cap)


def chunk_object(
    flat: Dict[str, str],
    max_keys_per_chunk: int,
    threshold_ratio: float = 0.8,
    threshold_cap: int = 10,
) -> List[Chunk]:
    """
    Découpe un dictionnaire plat en chunks bornés, en gardant ensemble les clés
    d'un même préfixe de premier niveau tant que possible.

    Un nouveau chunk démarre quand le courant est plein, ou quand le préfixe
    change alors que le courant est déjà "substantiel". La concaténation des
    chunks redonne exactement l'entrée, dans l'ordre.
    """
    if max_keys_per_chunk < 1:
        raise ValueError(f"max_keys_per_chunk doit être >= 1 (reçu: {max_keys_per_chunk})")

    threshold = substantial_threshold(max_keys_per_chunk, threshold_ratio, threshold_cap)
    chunks: List[Chunk] = []
    current = Chunk(index=1)

    for key, value in flat.items():
        prefix = top_level_key(key)
        if current.entries and (
            len(current) >= max_keys_per_chunk
            or (prefix != current.prefix and len(current) >= threshold)
        ):
            chunks.append(current)
            current = Chunk(index=len(chunks) + 1)

        if not current.entries:
            current.prefix = prefix
        current.entries.append((key, value if isinstance(value, str) else str(value)))

    if current.entries:
        chunks.append(current)
    return chunks
