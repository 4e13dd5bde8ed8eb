"""Set and vector similarity measures used by the candidate scorer."""

import math
from collections.abc import Iterable, Mapping


def normalize_skills(skills: Iterable[str]) -> set[str]:
    """Trim and lowercase skills, dropping blanks."""
    return {s.strip().lower() for s in skills if s and s.strip()}


def jaccard_similarity(skills_a: Iterable[str], skills_b: Iterable[str]) -> float:
    """Intersection over union of two skill sets, case-insensitive.

    Two empty sets are identical (1.0); one empty set against a non-empty one
    shares nothing (0.0).
    """
    a = normalize_skills(skills_a)
    b = normalize_skills(skills_b)
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def cosine_similarity(vec_a: Mapping[str, float], vec_b: Mapping[str, float]) -> float:
    """Cosine of two sparse term-weight vectors; 0.0 if either norm is zero."""
    if len(vec_b) < len(vec_a):
        vec_a, vec_b = vec_b, vec_a
    dot = sum(weight * vec_b[term] for term, weight in vec_a.items() if term in vec_b)
    norm_a = math.sqrt(sum(w * w for w in vec_a.values()))
    norm_b = math.sqrt(sum(w * w for w in vec_b.values()))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)
