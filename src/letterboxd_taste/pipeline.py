"""
The recommendation request: read the user's history, resolve it against the
catalog, build a taste vector, rank candidates and pick what to watch.
"""
import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

from .availability import annotate_providers, select
from .candidates import Mode, build_candidate_pool
from .catalog import CatalogResolver, TMDbClient
from .config import LIKED_RESOLVE_CAP, Settings
from .embeddings import EmbeddingClient
from .errors import (
    InvalidMode,
    MissingCredentials,
    NoCandidates,
    NoData,
    NoUsername,
    RecommendError,
    UnexpectedFailure,
)
from .profile import build_fingerprint, build_taste, liked_films, select_seeds
from .recommender import Candidate, score_candidates
from .scraper import AsyncLetterboxdScraper, clean_username

logger = logging.getLogger(__name__)


@dataclass
class Recommendation:
    username: str
    mode: str
    top_pick: Candidate
    alternates: list[Candidate] = field(default_factory=list)
    diagnostics: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "mode": self.mode,
            "top_pick": candidate_to_dict(self.top_pick),
            "alternates": [candidate_to_dict(c) for c in self.alternates],
            "diagnostics": self.diagnostics,
        }


def candidate_to_dict(candidate: Candidate) -> dict[str, Any]:
    meta = candidate.metadata
    return {
        "title": meta.title,
        "year": meta.year,
        "catalog_id": candidate.catalog_id,
        "url": f"https://www.themoviedb.org/movie/{candidate.catalog_id}",
        "score": round(candidate.score, 4),
        "similarity": round(candidate.similarity, 4),
        "bonus": round(candidate.bonus, 4),
        "penalty": round(candidate.penalty, 4),
        "directors": list(meta.directors),
        "genres": list(meta.genres),
        "providers": sorted(candidate.providers),
        "eligible": candidate.eligible,
        "reasons": candidate.reasons,
    }


async def _gather_or_raise(*aws):
    """Await everything, then re-raise the first failure in argument order."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


async def _recommend(
    username: str,
    mode: Mode,
    only_flatrate: bool,
    settings: Settings,
    scraper,
    catalog,
    embedder,
    show_progress: bool,
) -> Recommendation:
    history = await scraper.read_all(username)
    diagnostics: dict[str, Any] = {
        "ratings": len(history.ratings),
        "diary": len(history.diary),
        "watchlist": len(history.watchlist),
        "only_flatrate": only_flatrate,
    }
    if history.is_empty:
        raise NoData(username)
    if mode == Mode.WATCHLIST and not history.watchlist:
        raise NoCandidates(mode.value, "the watchlist is empty")

    resolver = CatalogResolver(catalog, show_progress=show_progress)
    liked = liked_films(history.ratings)[:LIKED_RESOLVE_CAP]
    liked_ids = await resolver.resolve_ids(liked)
    diagnostics.update(liked=len(liked), liked_resolved=len(liked_ids))

    pool, taste = await _gather_or_raise(
        build_candidate_pool(resolver, mode, liked_ids, history.diary, history.watchlist),
        select_seeds(resolver, liked_ids, history.diary, history.watchlist),
    )
    diagnostics.update(
        pool_source=pool.source,
        pool_seed_tier=pool.seed_tier,
        candidates=len(pool.films),
        seed_tier=taste.tier,
        seeds=len(taste.seeds),
        films_expanded=resolver.expanded_count,
    )

    taste_vectors, candidate_vectors = await asyncio.gather(
        embedder.embed(taste.fingerprints),
        embedder.embed([build_fingerprint(f) for f in pool.films]),
    )
    build_taste(taste, taste_vectors)
    if len(candidate_vectors) != len(pool.films):
        logger.warning("Candidate embeddings unavailable; ranking on overlap and penalty only")

    ranked = score_candidates(pool.films, candidate_vectors, taste.vector, taste.seed_text)
    annotated = await annotate_providers(resolver, ranked, settings.watch_region)
    selection = select(annotated, only_flatrate)
    diagnostics.update(
        scored=len(ranked),
        annotated=len(annotated),
        eligible=selection.eligible_count,
        fallback=selection.fallback,
    )

    logger.info(f"Top pick for {username}: {selection.top_pick.title} ({selection.top_pick.score:.3f})")
    return Recommendation(
        username=username,
        mode=mode.value,
        top_pick=selection.top_pick,
        alternates=selection.alternates,
        diagnostics=diagnostics,
    )


async def recommend_async(
    username: str | None,
    mode: str | Mode = Mode.AI,
    only_flatrate: bool = False,
    settings: Settings | None = None,
    *,
    scraper=None,
    catalog=None,
    embedder=None,
    show_progress: bool = False,
) -> Recommendation:
    """
    Recommend a film for a Letterboxd member.

    Collaborators may be injected already opened; anything not injected is
    built from settings and closed when the request ends.

    Raises:
        NoUsername, InvalidMode, MissingCredentials, NoData, NoCandidates, InsufficientTaste
        for the terminal conditions, and UnexpectedFailure for anything else.
    """
    user = clean_username(username)
    if not user:
        raise NoUsername()
    try:
        mode = Mode(mode)
    except ValueError:
        raise InvalidMode(mode, [m.value for m in Mode]) from None

    settings = settings or Settings.from_env()
    missing = settings.missing_credentials()
    if missing:
        raise MissingCredentials(missing)

    try:
        async with AsyncExitStack() as stack:
            if scraper is None:
                scraper = await stack.enter_async_context(AsyncLetterboxdScraper(settings))
            if catalog is None:
                catalog = await stack.enter_async_context(TMDbClient(settings))
            if embedder is None:
                embedder = await stack.enter_async_context(EmbeddingClient(settings))
            return await _recommend(user, mode, only_flatrate, settings, scraper, catalog, embedder, show_progress)
    except RecommendError:
        raise
    except Exception as exc:
        logger.exception(f"Recommendation for {user} failed")
        raise UnexpectedFailure(str(exc)) from exc


def recommend(
    username: str | None,
    mode: str | Mode = Mode.AI,
    only_flatrate: bool = False,
    settings: Settings | None = None,
    **kwargs,
) -> Recommendation:
    """Blocking wrapper around recommend_async."""
    return asyncio.run(recommend_async(username, mode, only_flatrate, settings, **kwargs))
