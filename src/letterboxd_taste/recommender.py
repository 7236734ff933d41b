from dataclasses import dataclass, field
import logging

import numpy as np

from .catalog import FilmMetadata
from .config import (
    CAST_CONSIDERED,
    CAST_OVERLAP_BONUS,
    DIRECTOR_OVERLAP_BONUS,
    PENALTY_CAP,
    PENALTY_POPULARITY_SCALE,
    PENALTY_POPULARITY_WEIGHT,
    PENALTY_VOTE_SCALE,
    PENALTY_VOTE_WEIGHT,
)

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """A scored film; lives only for the request that produced it."""
    catalog_id: int
    metadata: FilmMetadata
    score: float = 0.0
    similarity: float = 0.0
    bonus: float = 0.0
    penalty: float = 0.0
    providers: frozenset[str] = field(default_factory=frozenset)
    eligible: bool = False
    reasons: list[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.metadata.title

    @property
    def year(self) -> str | None:
        return self.metadata.year


def cosine_similarity(a, b) -> float:
    """
    dot(a, b) / (|a| * |b|), with the denominator floored at 1 when either
    vector has zero norm (the dot product is then 0 as well).
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    denom = norm_a * norm_b
    if norm_a == 0.0 or norm_b == 0.0:
        denom = 1.0
    return float(np.dot(a, b)) / denom


def mainstream_penalty(vote_count: float, popularity: float) -> float:
    """Penalty for high-exposure titles, clamped to [0, PENALTY_CAP]."""
    raw = (
        vote_count / PENALTY_VOTE_SCALE * PENALTY_VOTE_WEIGHT
        + popularity / PENALTY_POPULARITY_SCALE * PENALTY_POPULARITY_WEIGHT
    )
    return min(max(raw, 0.0), PENALTY_CAP)


def overlap_matches(meta: FilmMetadata, seed_text: str) -> tuple[list[str], list[str]]:
    """Directors and top-billed cast whose names appear in the seed fingerprints."""
    haystack = seed_text.lower()
    directors = [d for d in meta.directors if d and d.lower() in haystack]
    cast = [c for c in meta.cast[:CAST_CONSIDERED] if c and c.lower() in haystack]
    return directors, cast


def overlap_bonus(meta: FilmMetadata, seed_text: str) -> float:
    """Additive, uncapped: a fixed bonus per matching director and cast member."""
    directors, cast = overlap_matches(meta, seed_text)
    return len(directors) * DIRECTOR_OVERLAP_BONUS + len(cast) * CAST_OVERLAP_BONUS


def score_candidates(
    films: list[FilmMetadata],
    embeddings: np.ndarray,
    taste_vector: np.ndarray,
    seed_text: str,
) -> list[Candidate]:
    """
    Score every film and sort descending; equal scores keep pool order.

    A film without an embedding row (short or failed embedding response)
    scores with zero similarity.
    """
    dim = len(taste_vector)
    candidates = []
    for idx, meta in enumerate(films):
        if idx < len(embeddings) and embeddings.shape[-1] == dim:
            vector = embeddings[idx]
        else:
            vector = np.zeros(dim)

        similarity = cosine_similarity(taste_vector, vector)
        bonus = overlap_bonus(meta, seed_text)
        penalty = mainstream_penalty(meta.vote_count, meta.popularity)

        directors, cast = overlap_matches(meta, seed_text)
        reasons = []
        if directors:
            reasons.append(f"Directed by {', '.join(directors)}")
        if cast:
            reasons.append(f"With {', '.join(cast[:3])}")
        if penalty >= PENALTY_CAP:
            reasons.append("Widely seen")

        candidates.append(Candidate(
            catalog_id=meta.catalog_id,
            metadata=meta,
            score=similarity + bonus - penalty,
            similarity=similarity,
            bonus=bonus,
            penalty=penalty,
            reasons=reasons,
        ))

    # sorted() is stable
    ranked = sorted(candidates, key=lambda c: -c.score)
    if ranked:
        logger.debug(f"Scored {len(ranked)} candidates; best {ranked[0].title} ({ranked[0].score:.3f})")
    return ranked
