import logging
from dataclasses import dataclass, field
from enum import Enum

from .catalog import CatalogResolver, FilmMetadata, known_films
from .config import (
    CANDIDATE_CAP,
    DIARY_SEED_CAP,
    LIKED_RESOLVE_CAP,
    POPULAR_CAP,
    RELATED_PER_SEED,
    RELATED_SEED_CAP,
    WATCHLIST_SEED_CAP,
)
from .errors import NoCandidates
from .scraper import DiaryEntry, WatchlistEntry
from .utils import first_usable

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    WATCHLIST = "watchlist"
    AI = "ai"


@dataclass
class CandidatePool:
    source: str
    films: list[FilmMetadata] = field(default_factory=list)
    seed_tier: str | None = None
    seed_ids: list[int] = field(default_factory=list)


async def build_watchlist_pool(resolver: CatalogResolver, watchlist: list[WatchlistEntry]) -> CandidatePool:
    """Rank what the user already wants to see."""
    if not watchlist:
        raise NoCandidates(Mode.WATCHLIST.value, "the watchlist is empty")

    films = known_films(await resolver.resolve_many(watchlist[:CANDIDATE_CAP], desc="Watchlist candidates"))
    logger.info(f"Watchlist pool: {len(films)} of {min(len(watchlist), CANDIDATE_CAP)} titles resolved")
    return CandidatePool(source="watchlist", films=films)


async def build_ai_pool(
    resolver: CatalogResolver,
    liked_ids: list[int],
    diary: list[DiaryEntry],
    watchlist: list[WatchlistEntry],
) -> CandidatePool:
    """
    Titles related to the user's seed films, falling back to popular titles
    when the related graph comes back empty.
    """
    async def liked():
        return liked_ids[:LIKED_RESOLVE_CAP]

    seed_tier, seed_ids = await first_usable(
        [
            ("liked", liked),
            ("diary", lambda: resolver.resolve_ids(diary[:DIARY_SEED_CAP])),
            ("watchlist", lambda: resolver.resolve_ids(watchlist[:WATCHLIST_SEED_CAP])),
        ],
        default=[],
        label="related seeds",
    )
    seen = set(seed_ids)

    async def related():
        ids = await resolver.related_ids(seed_ids[:RELATED_SEED_CAP], RELATED_PER_SEED, CANDIDATE_CAP)
        return [i for i in ids if i not in seen][:CANDIDATE_CAP]

    async def popular():
        ids = await resolver.popular_ids(POPULAR_CAP)
        return [i for i in ids if i not in seen]

    source, candidate_ids = await first_usable(
        [("related", related), ("popular", popular)],
        default=[],
        label="candidate ids",
    )
    films = known_films(await resolver.expand_many(candidate_ids, desc="Candidates"))
    logger.info(
        f"AI pool: {len(films)} films from {source or 'nothing'} "
        f"({len(seed_ids)} seeds from {seed_tier or 'nothing'})"
    )
    return CandidatePool(source=source or "none", films=films, seed_tier=seed_tier, seed_ids=list(seed_ids))


async def build_candidate_pool(
    resolver: CatalogResolver,
    mode: Mode,
    liked_ids: list[int],
    diary: list[DiaryEntry],
    watchlist: list[WatchlistEntry],
) -> CandidatePool:
    """
    Raises:
        NoCandidates: the selected mode produced no resolvable films
    """
    if mode == Mode.WATCHLIST:
        pool = await build_watchlist_pool(resolver, watchlist)
    else:
        pool = await build_ai_pool(resolver, liked_ids, diary, watchlist)

    if not pool.films:
        raise NoCandidates(mode.value, "no candidate film could be resolved")
    return pool
