"""Name normalization and edit-distance similarity used for duplicate and venue matching."""

import re

from rapidfuzz.distance import Levenshtein


def normalize(text: str) -> str:
    """Lowercase, keep only [a-z0-9] and spaces, collapse whitespace."""
    text = re.sub(r"\s", " ", text.lower())
    text = re.sub(r"[^a-z0-9 ]", "", text)
    return re.sub(r" +", " ", text).strip()


def levenshtein(a: str, b: str) -> int:
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Score in [0, 1]: 1 - distance / longer length. Two empty strings are identical."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - levenshtein(a, b)) / max_len
