"""
TMDb access: title search, metadata expansion, related/popular titles and
watch providers.

Every endpoint degrades to an empty payload on failure; nothing here raises
into the pipeline for a network or HTTP problem.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable

import httpx
from tqdm.asyncio import tqdm_asyncio

from .config import CAST_CONSIDERED, Settings
from .utils import dedupe

logger = logging.getLogger(__name__)

WRITER_JOBS = {"Screenplay", "Writer", "Story", "Novel", "Author"}
PROVIDER_KINDS = ("flatrate", "free", "ads", "rent", "buy")


@dataclass(frozen=True)
class CatalogMatch:
    catalog_id: int


@dataclass(frozen=True)
class FilmMetadata:
    catalog_id: int
    title: str
    release_date: str = ""
    genres: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    cast: tuple[str, ...] = ()
    directors: tuple[str, ...] = ()
    crew: tuple[str, ...] = ()  # directors and writers
    overview: str = ""
    popularity: float = 0.0
    vote_count: int = 0

    @property
    def year(self) -> str | None:
        return self.release_date[:4] if len(self.release_date) >= 4 else None


@dataclass(frozen=True)
class Provider:
    name: str
    kind: str


def _names(items, key: str = "name") -> tuple[str, ...]:
    names = ((item.get(key) or "").strip() for item in items or [] if isinstance(item, dict))
    return tuple(dict.fromkeys(name for name in names if name))


def parse_metadata(catalog_id: int, details: dict, keywords: dict, credits: dict) -> FilmMetadata:
    """Merge the three lookups; a missing payload leaves its fields empty."""
    cast_entries = sorted(
        (c for c in credits.get("cast") or [] if isinstance(c, dict)),
        key=lambda c: c.get("order") or 0,
    )
    crew_entries = [c for c in credits.get("crew") or [] if isinstance(c, dict)]
    directors = _names([c for c in crew_entries if c.get("job") == "Director"])
    writers = _names([c for c in crew_entries if c.get("job") in WRITER_JOBS or c.get("department") == "Writing"])

    try:
        popularity = float(details.get("popularity") or 0.0)
    except (TypeError, ValueError):
        popularity = 0.0
    try:
        vote_count = int(details.get("vote_count") or 0)
    except (TypeError, ValueError):
        vote_count = 0

    return FilmMetadata(
        catalog_id=catalog_id,
        title=details.get("title") or details.get("original_title") or "",
        release_date=details.get("release_date") or "",
        genres=_names(details.get("genres")),
        keywords=_names(keywords.get("keywords") or keywords.get("results")),
        cast=_names(cast_entries)[:CAST_CONSIDERED],
        directors=directors,
        crew=tuple(dict.fromkeys(directors + writers)),
        overview=(details.get("overview") or "").strip(),
        popularity=popularity,
        vote_count=vote_count,
    )


def known_films(films: list[FilmMetadata]) -> list[FilmMetadata]:
    """Drop matches whose details never arrived; they carry no signal."""
    return [f for f in films if f.title]


def parse_providers(payload: dict, region: str) -> list[Provider]:
    regional = (payload.get("results") or {}).get(region) or {}
    providers = []
    for kind in PROVIDER_KINDS:
        for entry in regional.get(kind) or []:
            name = (entry.get("provider_name") or "").strip()
            if name:
                providers.append(Provider(name, kind))
    return dedupe(providers)


class TMDbClient:
    """Thin async wrapper over the TMDb v3 endpoints the recommender needs."""

    BASE = "https://api.themoviedb.org/3"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.semaphore = asyncio.Semaphore(settings.max_concurrent)
        self.client = None
        self._transport = transport

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            base_url=self.BASE,
            timeout=self.settings.http_timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
        return False

    async def _get_json(self, path: str, **params) -> dict:
        if not self.client:
            raise RuntimeError("TMDbClient must be used as an async context manager")

        query = {"api_key": self.settings.tmdb_api_key}
        query.update({k: v for k, v in params.items() if v is not None})

        async with self.semaphore:
            try:
                resp = await self.client.get(path, params=query)
            except httpx.HTTPError as exc:
                logger.error(f"Request error on {path}: {type(exc).__name__}: {exc}")
                return {}

        if not resp.is_success:
            logger.debug(f"HTTP {resp.status_code} on {path}")
            return {}
        try:
            data = resp.json()
        except ValueError as exc:
            logger.warning(f"Invalid JSON from {path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    async def search_movie(self, query: str, year: str | None = None) -> dict:
        return await self._get_json("/search/movie", query=query, year=year, include_adult="false")

    async def details(self, catalog_id: int) -> dict:
        return await self._get_json(f"/movie/{catalog_id}")

    async def keywords(self, catalog_id: int) -> dict:
        return await self._get_json(f"/movie/{catalog_id}/keywords")

    async def credits(self, catalog_id: int) -> dict:
        return await self._get_json(f"/movie/{catalog_id}/credits")

    async def related(self, catalog_id: int, page: int = 1) -> dict:
        return await self._get_json(f"/movie/{catalog_id}/recommendations", page=page)

    async def popular(self, page: int = 1) -> dict:
        return await self._get_json("/movie/popular", page=page)

    async def watch_providers(self, catalog_id: int) -> dict:
        return await self._get_json(f"/movie/{catalog_id}/watch/providers")


class CatalogResolver:
    """
    Request-scoped view of the catalog.

    Searches and expansions are memoised as tasks, so concurrent callers
    asking for the same film share one set of lookups.
    """

    def __init__(self, client: TMDbClient, show_progress: bool = False):
        self.client = client
        self.show_progress = show_progress
        self._searches: dict[tuple[str, str | None], asyncio.Task] = {}
        self._expansions: dict[int, asyncio.Task] = {}

    async def _search(self, title: str, year: str | None) -> CatalogMatch | None:
        payload = await self.client.search_movie(title, year)
        results = payload.get("results") or []
        if not results or results[0].get("id") is None:
            logger.debug(f"No catalog match for '{title}' ({year})")
            return None
        return CatalogMatch(int(results[0]["id"]))

    async def search(self, title: str, year: str | None = None) -> CatalogMatch | None:
        """First search result wins; no disambiguation between same-named films."""
        key = (title.strip().lower(), year)
        if key not in self._searches:
            self._searches[key] = asyncio.ensure_future(self._search(title, year))
        return await self._searches[key]

    async def _expand(self, catalog_id: int) -> FilmMetadata:
        details, keywords, credits = await asyncio.gather(
            self.client.details(catalog_id),
            self.client.keywords(catalog_id),
            self.client.credits(catalog_id),
        )
        if not details:
            logger.warning(f"No details for catalog id {catalog_id}, using partial metadata")
        return parse_metadata(catalog_id, details, keywords, credits)

    async def expand(self, catalog_id: int) -> FilmMetadata:
        if catalog_id not in self._expansions:
            self._expansions[catalog_id] = asyncio.ensure_future(self._expand(catalog_id))
        return await self._expansions[catalog_id]

    @property
    def expanded_count(self) -> int:
        return len(self._expansions)

    async def resolve_ids(self, entries: Iterable) -> list[int]:
        """Catalog ids for (name, year) records, in order, without repeats or misses."""
        entries = list(entries)
        matches = await asyncio.gather(*(self.search(e.name, e.year) for e in entries))
        return dedupe(m.catalog_id for m in matches if m is not None)

    async def expand_many(self, catalog_ids: Iterable[int], desc: str = "Expanding films") -> list[FilmMetadata]:
        ids = dedupe(catalog_ids)
        if not ids:
            return []
        return await tqdm_asyncio.gather(
            *(self.expand(i) for i in ids),
            desc=desc,
            disable=not self.show_progress,
        )

    async def resolve_many(self, entries: Iterable, desc: str = "Resolving films") -> list[FilmMetadata]:
        return await self.expand_many(await self.resolve_ids(entries), desc=desc)

    async def related_ids(self, seed_ids: list[int], per_seed: int, cap: int) -> list[int]:
        pages = await asyncio.gather(*(self.client.related(i) for i in seed_ids))
        related = []
        for page in pages:
            related.extend(r["id"] for r in (page.get("results") or [])[:per_seed] if r.get("id") is not None)
        return dedupe(related)[:cap]

    async def popular_ids(self, cap: int, page_size: int = 20) -> list[int]:
        page_count = max(1, -(-cap // page_size))
        pages = await asyncio.gather(*(self.client.popular(p) for p in range(1, page_count + 1)))
        popular = []
        for page in pages:
            popular.extend(r["id"] for r in page.get("results") or [] if r.get("id") is not None)
        return dedupe(popular)[:cap]

    async def providers(self, catalog_id: int, region: str) -> list[Provider]:
        return parse_providers(await self.client.watch_providers(catalog_id), region)
