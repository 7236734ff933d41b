import logging
from dataclasses import dataclass, field

import numpy as np

from .catalog import CatalogResolver, FilmMetadata, known_films
from .config import (
    CAST_CONSIDERED,
    DIARY_SEED_CAP,
    LIKED_MIN_STARS,
    LIKED_TASTE_CAP,
    WATCHLIST_SEED_CAP,
)
from .errors import InsufficientTaste
from .scraper import DiaryEntry, RatedFilm, WatchlistEntry
from .utils import first_usable

logger = logging.getLogger(__name__)


@dataclass
class TasteProfile:
    """Seed films behind a user's taste vector, for one request."""
    tier: str
    seeds: list[FilmMetadata] = field(default_factory=list)
    fingerprints: list[str] = field(default_factory=list)
    vector: np.ndarray | None = None

    @property
    def seed_text(self) -> str:
        """All seed fingerprints joined; searched for director/cast overlap."""
        return " ".join(self.fingerprints)


def build_fingerprint(meta: FilmMetadata) -> str:
    """
    Lowercase text summary used as embedding input: title, genres, keywords,
    top-billed cast, directors/writers and overview.
    """
    parts = [
        meta.title,
        ", ".join(meta.genres),
        ", ".join(meta.keywords),
        ", ".join(meta.cast[:CAST_CONSIDERED]),
        ", ".join(meta.crew),
        meta.overview,
    ]
    return " | ".join(parts).lower()


def liked_films(ratings: list[RatedFilm]) -> list[RatedFilm]:
    return [r for r in ratings if r.stars >= LIKED_MIN_STARS]


async def select_seeds(
    resolver: CatalogResolver,
    liked_ids: list[int],
    diary: list[DiaryEntry],
    watchlist: list[WatchlistEntry],
) -> TasteProfile:
    """
    Pick seed films tier by tier: liked films, then diary, then watchlist.

    Raises:
        InsufficientTaste: no tier produced a single resolvable film
    """
    async def liked():
        return known_films(await resolver.expand_many(liked_ids[:LIKED_TASTE_CAP], desc="Liked films"))

    async def from_diary():
        return known_films(await resolver.resolve_many(diary[:DIARY_SEED_CAP], desc="Diary seeds"))

    async def from_watchlist():
        return known_films(await resolver.resolve_many(watchlist[:WATCHLIST_SEED_CAP], desc="Watchlist seeds"))

    tier, seeds = await first_usable(
        [("liked", liked), ("diary", from_diary), ("watchlist", from_watchlist)],
        default=[],
        label="taste seeds",
    )
    if not seeds:
        raise InsufficientTaste("none of the liked, diary or watchlist films could be resolved")

    logger.info(f"Taste seeds: {len(seeds)} films from {tier}")
    return TasteProfile(tier=tier, seeds=seeds, fingerprints=[build_fingerprint(s) for s in seeds])


def build_taste(profile: TasteProfile, vectors: np.ndarray) -> TasteProfile:
    """
    Average the seed embeddings into the taste vector.

    Raises:
        InsufficientTaste: the embedding service returned nothing usable
    """
    if vectors.size == 0 or len(vectors) != len(profile.fingerprints):
        raise InsufficientTaste("seed films could not be embedded")

    profile.vector = np.asarray(vectors, dtype=float).mean(axis=0)
    return profile
