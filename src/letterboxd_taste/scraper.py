import asyncio
import html
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

import httpx
from selectolax.parser import HTMLParser

from .config import (
    ACCEPT_LANGUAGE,
    DIARY_MAX_PAGES,
    MAX_STARS,
    MIN_DOCUMENT_LENGTH,
    RATING_CLASS_DIVISOR,
    RATINGS_MAX_PAGES,
    USER_AGENT,
    WATCHLIST_MAX_PAGES,
    WATCHLIST_PAGE_MIN_ITEMS,
    Settings,
)
from .utils import dedupe, first_usable

logger = logging.getLogger(__name__)

# Asks the rendering proxy for the page's HTML rather than its markdown digest
PROXY_HEADERS = {"X-Return-Format": "html"}

_DETAIL_ITEMS = "li.film-detail"
_POSTER_ITEMS = "ul.poster-list li, li.poster-container, li.griditem"
_DIARY_ROWS = "tr.diary-entry-row"

_NAME_ATTRS = ("data-item-name", "data-film-name", "data-film-title")
_YEAR_ATTRS = ("data-film-release-year", "data-item-release-year", "data-film-year")
_NAMED_HOLDERS = (
    "[data-item-name], [data-film-name], [data-film-title], "
    "[data-film-release-year], [data-item-release-year]"
)
_POSTER_ALT_PREFIX = "Poster for "

_YEAR_SUFFIX = re.compile(r"^(?P<name>.+?)\s*\((?P<year>\d{4})\)\s*$")
_YEAR = re.compile(r"\b(?:18|19|20|21)\d{2}\b")
_FEED_TITLE = re.compile(r"<title[^>]*>(.*?)</title>", re.S | re.I)
_FEED_ENTRY = re.compile(
    r"^(?P<name>.+?)(?:\s*\((?P<paren>\d{4})\)|,\s*(?P<comma>\d{4}))(?:\s+-\s+.*)?$"
)


class ListingKind(str, Enum):
    RATINGS = "ratings"
    DIARY = "diary"
    WATCHLIST = "watchlist"


@dataclass(frozen=True)
class RatedFilm:
    name: str
    year: str | None
    stars: float = 0.0


@dataclass(frozen=True)
class DiaryEntry:
    name: str
    year: str | None


@dataclass(frozen=True)
class WatchlistEntry:
    name: str
    year: str | None


@dataclass
class UserHistory:
    """Everything the three source readers found for one user."""
    ratings: list[RatedFilm] = field(default_factory=list)
    diary: list[DiaryEntry] = field(default_factory=list)
    watchlist: list[WatchlistEntry] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.ratings or self.diary or self.watchlist)


@dataclass(frozen=True)
class ListingSpec:
    kind: ListingKind
    path: str
    max_pages: int
    min_items: int = 1  # A page with fewer records is the last one


LISTINGS = {
    ListingKind.RATINGS: ListingSpec(ListingKind.RATINGS, "films/ratings", RATINGS_MAX_PAGES),
    ListingKind.DIARY: ListingSpec(ListingKind.DIARY, "films/diary", DIARY_MAX_PAGES),
    ListingKind.WATCHLIST: ListingSpec(
        ListingKind.WATCHLIST, "watchlist", WATCHLIST_MAX_PAGES, WATCHLIST_PAGE_MIN_ITEMS
    ),
}

BASE = "https://letterboxd.com"


def clean_username(raw: str | None) -> str:
    """
    Normalise a username typed by a person: '@Name', '/name/' and 'NAME'
    all become 'name'. Characters Letterboxd never uses are removed.
    """
    stripped = (raw or "").strip().lstrip("@").strip("/")
    sanitized = re.sub(r'[^a-z0-9_-]', '', stripped.lower())
    if sanitized != stripped.lower():
        logger.warning(f"Username '{raw}' sanitized to '{sanitized}'")
    return sanitized


def listing_url(username: str, kind: ListingKind, page: int = 1) -> str:
    path = LISTINGS[kind].path
    if page <= 1:
        return f"{BASE}/{username}/{path}/"
    return f"{BASE}/{username}/{path}/page/{page}/"


def feed_url(username: str) -> str:
    return f"{BASE}/{username}/rss/"


def _parse_rating_span(span) -> float:
    """
    Parse stars from a span carrying a class like 'rated-8'.

    The class number is divided by RATING_CLASS_DIVISOR. Spans without a
    usable class, and values outside [0, MAX_STARS], count as unrated (0.0).

    Letterboxd renders half-star counts (rated-1 .. rated-10), so with the
    default divisor of 10 every rating lands in 0.1-1.0 stars and none reaches
    LIKED_MIN_STARS: the liked seed tier stays empty and seeding falls
    through to the diary. Set LETTERBOXD_RATING_DIVISOR=2 to read the classes
    as half stars (rated-8 -> 4.0) instead.
    """
    if span is None:
        return 0.0

    classes = span.attributes.get("class") or ""
    for cls in classes.split():
        if cls.startswith("rated-"):
            try:
                val = int(cls.replace("rated-", "")) / RATING_CLASS_DIVISOR
            except ValueError as exc:
                logger.warning(f"Unexpected rating format in class '{cls}': {exc}")
                return 0.0
            if 0.0 <= val <= MAX_STARS:
                return val
            logger.warning(f"Rating value outside range [0-{MAX_STARS}]: {val} from class '{cls}'")
            return 0.0
    return 0.0


def _split_year(raw: str | None) -> tuple[str, str | None]:
    text = " ".join((raw or "").split())
    match = _YEAR_SUFFIX.match(text)
    if match:
        return match.group("name").strip(), match.group("year")
    return text, None


def _first_attr(node, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = node.attributes.get(name)
        if value and value.strip():
            return value.strip()
    return None


def _poster_identity(item) -> tuple[str, str | None]:
    """Name and year from a poster/grid tile (data attributes, image alt, link text)."""
    name = year = None
    for node in [item, *item.css(_NAMED_HOLDERS)]:
        name = name or _first_attr(node, _NAME_ATTRS)
        year = year or _first_attr(node, _YEAR_ATTRS)

    if not name:
        img = item.css_first("img[alt]")
        if img:
            alt = (img.attributes.get("alt") or "").strip()
            name = alt[len(_POSTER_ALT_PREFIX):] if alt.startswith(_POSTER_ALT_PREFIX) else alt

    if not name:
        link = item.css_first("a")
        if link:
            name = link.text(strip=True) or _first_attr(link, ("data-original-title", "title"))

    name, suffix_year = _split_year(name)
    return name, year or suffix_year


def _detail_identity(item) -> tuple[str, str | None]:
    """Name and year from a list-view entry (heading link plus metadata line)."""
    heading = item.css_first("h2 a, h3 a, .film-title a, .diary-entry-title a")
    if heading is None:
        return _poster_identity(item)

    name, year = _split_year(heading.text(strip=True))
    if year is None:
        meta = item.css_first(
            "small.metadata a, .metadata a, td.td-released span, td.col-releaseyear span"
        )
        if meta:
            match = _YEAR.search(meta.text(strip=True))
            year = match.group(0) if match else None
    if year is None:
        _, year = _poster_identity(item)
    return name, year


def _merge_layouts(records: list) -> list:
    """
    Union of the records every layout produced for one page.

    A yearless record is dropped when another layout found the same name
    with a year, so one film never shows up twice from two layouts.
    """
    unique = dedupe(records)
    dated = {r.name for r in unique if r.year}
    return [r for r in unique if r.year or r.name not in dated]


def extract_ratings(tree: HTMLParser) -> list[RatedFilm]:
    records = []
    for selector, identity in ((_DETAIL_ITEMS, _detail_identity), (_POSTER_ITEMS, _poster_identity)):
        for item in tree.css(selector):
            name, year = identity(item)
            if not name:
                continue
            stars = _parse_rating_span(item.css_first("span.rating"))
            records.append(RatedFilm(name, year, stars))
    return _merge_layouts(records)


def extract_diary(tree: HTMLParser) -> list[DiaryEntry]:
    records = []
    for selector, identity in ((_DIARY_ROWS, _detail_identity), (_POSTER_ITEMS, _poster_identity)):
        for item in tree.css(selector):
            name, year = identity(item)
            if name:
                records.append(DiaryEntry(name, year))

    # Oldest diary markup: bare title links outside any row
    if not records:
        for link in tree.css(".diary-entry-title a"):
            name, year = _split_year(link.text(strip=True))
            if name:
                records.append(DiaryEntry(name, year))
    return _merge_layouts(records)


def extract_watchlist(tree: HTMLParser) -> list[WatchlistEntry]:
    records = []
    for selector, identity in ((_DETAIL_ITEMS, _detail_identity), (_POSTER_ITEMS, _poster_identity)):
        for item in tree.css(selector):
            name, year = identity(item)
            if name:
                records.append(WatchlistEntry(name, year))
    return _merge_layouts(records)


EXTRACTORS: dict[ListingKind, Callable[[HTMLParser], list]] = {
    ListingKind.RATINGS: extract_ratings,
    ListingKind.DIARY: extract_diary,
    ListingKind.WATCHLIST: extract_watchlist,
}


def extract_listing(markup: str, kind: ListingKind) -> list:
    """Extract records of the given listing kind from one page of raw markup."""
    if not markup or not markup.strip():
        return []
    return EXTRACTORS[kind](HTMLParser(markup))


def parse_diary_feed(text: str | None) -> list[DiaryEntry]:
    """
    Parse diary entries from the RSS feed.

    Item titles look like 'Name (YYYY)' or 'Name, YYYY - ★★★½'. The first
    <title> belongs to the channel and is skipped, as is any item title
    without a year (list posts).
    """
    entries = []
    for raw in _FEED_TITLE.findall(text or "")[1:]:
        value = html.unescape(raw.replace("<![CDATA[", "").replace("]]>", "")).strip()
        if not value:
            continue
        match = _FEED_ENTRY.match(value)
        if match is None:
            # List and review posts share the feed; only dated film entries count
            logger.debug(f"Skipping non-diary feed item '{value}'")
            continue
        entries.append(DiaryEntry(match.group("name").strip(), match.group("paren") or match.group("comma")))
    return dedupe(entries)


async def collect_pages(
    fetch_page: Callable[[int], Awaitable[HTMLParser | None]],
    extract: Callable[[HTMLParser], list],
    max_pages: int,
    should_continue: Callable[[list], bool] = bool,
) -> list:
    """
    Walk pages 1..max_pages, stopping early on a missing page or when
    should_continue rejects the page just read.

    Returns the deduplicated union of every page's records.
    """
    collected = []
    for page in range(1, max_pages + 1):
        tree = await fetch_page(page)
        if tree is None:
            logger.debug(f"  Page {page} unavailable, stopping")
            break

        records = extract(tree)
        collected.extend(records)
        logger.debug(f"  Page {page}: {len(records)} items")

        if not should_continue(records):
            break

    return dedupe(collected)


class AsyncLetterboxdScraper:
    """Reads a member's ratings, diary and watchlist from public pages."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.client = None
        self._transport = transport

    async def __aenter__(self):
        """Async context manager entry."""
        self.client = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT, "Accept-Language": ACCEPT_LANGUAGE},
            follow_redirects=True,
            timeout=self.settings.http_timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client:
            await self.client.aclose()
        return False

    async def _fetch(self, url: str, headers: dict | None = None) -> httpx.Response | None:
        if not self.client:
            raise RuntimeError("AsyncLetterboxdScraper must be used as an async context manager")

        try:
            return await self.client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(f"Request error on {url}: {type(exc).__name__}: {exc}")
            return None

    @staticmethod
    def _is_document(resp: httpx.Response | None, marker: str) -> bool:
        """A usable page: 2xx, not implausibly short, containing its root marker."""
        if resp is None or not resp.is_success:
            return False
        text = resp.text
        return len(text) >= MIN_DOCUMENT_LENGTH and marker in text.lower()

    async def _get_text(self, url: str, marker: str = "<html") -> str | None:
        """Direct fetch, then one attempt through the rendering proxy."""
        strategies = [("direct", lambda: self._fetch(url))]
        if self.settings.proxy_base:
            proxied = f"{self.settings.proxy_base}{url}"
            strategies.append(("proxy", lambda: self._fetch(proxied, headers=PROXY_HEADERS)))

        tier, resp = await first_usable(
            strategies,
            usable=lambda r: self._is_document(r, marker),
            label=f"fetch {url}",
        )
        if resp is None:
            logger.debug(f"No usable document for {url}")
            return None
        if tier != "direct":
            logger.info(f"Fetched {url} via {tier}")
        return resp.text

    async def _get(self, url: str) -> HTMLParser | None:
        text = await self._get_text(url)
        return HTMLParser(text) if text is not None else None

    async def read_listing(self, username: str, kind: ListingKind) -> list:
        """Paginated markup reader for one listing kind."""
        spec = LISTINGS[kind]
        return await collect_pages(
            lambda page: self._get(listing_url(username, kind, page)),
            EXTRACTORS[kind],
            spec.max_pages,
            lambda records: len(records) >= spec.min_items,
        )

    async def read_ratings(self, username: str) -> list[RatedFilm]:
        logger.info(f"Reading {username}'s ratings...")
        return await self.read_listing(username, ListingKind.RATINGS)

    async def _read_diary_feed(self, username: str) -> list[DiaryEntry]:
        text = await self._get_text(feed_url(username), marker="<title")
        return parse_diary_feed(text)

    async def read_diary(self, username: str) -> list[DiaryEntry]:
        logger.info(f"Reading {username}'s diary...")
        tier, entries = await first_usable(
            [
                ("feed", lambda: self._read_diary_feed(username)),
                ("markup", lambda: self.read_listing(username, ListingKind.DIARY)),
            ],
            default=[],
            label="diary",
        )
        logger.debug(f"  Diary source: {tier or 'none'}")
        return entries

    async def read_watchlist(self, username: str) -> list[WatchlistEntry]:
        logger.info(f"Reading {username}'s watchlist...")
        return await self.read_listing(username, ListingKind.WATCHLIST)

    async def read_all(self, username: str) -> UserHistory:
        """
        Run the three readers concurrently. A reader that blows up counts as
        having found nothing; the caller decides what an empty history means.
        """
        readers = {
            ListingKind.RATINGS: self.read_ratings,
            ListingKind.DIARY: self.read_diary,
            ListingKind.WATCHLIST: self.read_watchlist,
        }
        results = await asyncio.gather(
            *(reader(username) for reader in readers.values()),
            return_exceptions=True,
        )

        collected = {}
        for kind, result in zip(readers, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to read {kind.value} for {username}: {type(result).__name__}: {result}")
                result = []
            collected[kind] = result

        history = UserHistory(
            ratings=collected[ListingKind.RATINGS],
            diary=collected[ListingKind.DIARY],
            watchlist=collected[ListingKind.WATCHLIST],
        )
        logger.info(
            f"Total: {len(history.ratings)} rated, {len(history.diary)} diary, "
            f"{len(history.watchlist)} watchlisted"
        )
        return history

    async def visibility_report(self, username: str) -> list[dict]:
        """
        One direct request per listing page 1-2 and the feed, reporting what
        an anonymous visitor can see. Used to explain empty results.
        """
        targets = [
            (f"{kind.value} page {page}", listing_url(username, kind, page), kind)
            for kind in ListingKind
            for page in (1, 2)
        ]
        targets.append(("diary feed", feed_url(username), None))

        rows = []
        for label, url, kind in targets:
            resp = await self._fetch(url)
            status = resp.status_code if resp is not None else -1
            text = resp.text if resp is not None else ""
            items = 0
            if resp is not None and resp.is_success:
                items = len(parse_diary_feed(text)) if kind is None else len(extract_listing(text, kind))
            snippet = " ".join(text.split())
            rows.append({
                "label": label,
                "url": url,
                "status": status,
                "items": items,
                "snippet": snippet[:200] + ("..." if len(snippet) > 200 else ""),
            })
        return rows


VISIBILITY_HINTS = [
    "If ratings pages show 404 here but open fine in a private browser window, "
    "set Letterboxd Settings > Privacy > Display film ratings to Everyone.",
    "If the watchlist shows 404 or 0 items but you can see it when logged in, make the watchlist public.",
    "If everything is 403 or empty but opens fine in a browser, Letterboxd is blocking this "
    "machine's IP; recommendations will go through the rendering proxy.",
]
