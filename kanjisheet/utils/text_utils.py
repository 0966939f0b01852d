import re
from typing import Iterable, List, Tuple

_WORD_SEPARATORS = re.compile(r"[\n,]")


def to_words_list(raw: str) -> List[str]:
    """
    Découpe une saisie libre (retours à la ligne ou virgules) en liste de mots.
    Les entrées vides sont ignorées.
    """
    if not raw:
        return []
    return [w.strip() for w in _WORD_SEPARATORS.split(raw) if w.strip()]


def from_words_list(words: Iterable[str]) -> str:
    return "\n".join(words or [])


def split_target(full_text: str, target: str) -> Tuple[str, str, bool]:
    """
    Coupe la phrase autour de la 1ère occurrence du kanji cible.
    Retourne (before, after, found). Si la cible est absente (ou vide),
    tout le texte part dans `after` et found=False.
    """
    idx = full_text.find(target) if target else -1
    if idx < 0:
        return "", full_text, False
    return full_text[:idx], full_text[idx + len(target):], True
