import pytest
from selectolax.parser import HTMLParser

from letterboxd_taste import scraper
from letterboxd_taste.scraper import DiaryEntry, ListingKind, RatedFilm, WatchlistEntry


DETAIL_RATINGS = """
<html><body>
  <ul class="film-list">
    <li class="film-detail">
      <h2 class="headline-2"><a href="/film/parasite-2019/">Parasite</a>
        <small class="metadata"><a href="/films/year/2019/">2019</a></small></h2>
      <p class="film-detail-meta"><span class="rating rated-10"></span></p>
    </li>
    <li class="film-detail">
      <h2 class="headline-2"><a href="/film/heat/">Heat</a>
        <small class="metadata"><a href="/films/year/1995/">1995</a></small></h2>
    </li>
  </ul>
</body></html>
"""

POSTER_RATINGS = """
<html><body>
  <ul class="poster-list">
    <li class="poster-container">
      <div class="film-poster" data-film-name="Alien" data-film-release-year="1979">
        <img alt="Alien" />
      </div>
      <p class="poster-viewingdata"><span class="rating rated-8"></span></p>
    </li>
    <li class="griditem">
      <div class="react-component" data-item-name="Arrival (2016)" data-item-slug="arrival"></div>
      <p class="poster-viewingdata"><span class="rating rated-7"></span></p>
    </li>
  </ul>
</body></html>
"""


def test_extract_ratings_detail_layout():
    records = scraper.extract_ratings(HTMLParser(DETAIL_RATINGS))

    assert records == [
        RatedFilm("Parasite", "2019", 1.0),
        RatedFilm("Heat", "1995", 0.0),
    ]


def test_extract_ratings_poster_and_grid_layouts():
    records = scraper.extract_ratings(HTMLParser(POSTER_RATINGS))

    assert RatedFilm("Alien", "1979", 0.8) in records
    assert RatedFilm("Arrival", "2016", 0.7) in records
    assert len(records) == 2


def test_extract_ratings_merges_layouts_on_one_page():
    html = DETAIL_RATINGS.replace("</body></html>", "") + POSTER_RATINGS.replace("<html><body>", "")
    records = scraper.extract_ratings(HTMLParser(html))

    assert {r.name for r in records} == {"Parasite", "Heat", "Alien", "Arrival"}


def test_rating_class_maps_to_tenths():
    def parse(cls):
        return scraper._parse_rating_span(HTMLParser(f"<span class='rating {cls}'></span>").css_first("span"))

    assert parse("rated-8") == pytest.approx(0.8)
    assert parse("rated-10") == pytest.approx(1.0)
    assert parse("rated-1") == pytest.approx(0.1)
    assert parse("rated-xx") == 0.0
    assert parse("other-class") == 0.0
    assert parse("rated-99") == 0.0  # 9.9 stars is out of range
    assert scraper._parse_rating_span(None) == 0.0


def test_rating_scale_decides_whether_films_count_as_liked(monkeypatch):
    from letterboxd_taste.profile import liked_films

    page = HTMLParser(
        "<ul class='poster-list'>"
        + "".join(
            f"<li class='poster-container'><div data-film-name='Film {n}'></div>"
            f"<span class='rating rated-{n}'></span></li>"
            for n in range(1, 11)
        )
        + "</ul>"
    )

    tenths = scraper.extract_ratings(page)
    assert max(r.stars for r in tenths) == pytest.approx(1.0)
    assert liked_films(tenths) == []

    monkeypatch.setattr(scraper, "RATING_CLASS_DIVISOR", 2.0)
    half_stars = scraper.extract_ratings(page)
    assert [r.stars for r in half_stars] == [n / 2 for n in range(1, 11)]
    assert [r.name for r in liked_films(half_stars)] == ["Film 8", "Film 9", "Film 10"]


@pytest.mark.parametrize("kind", list(ListingKind))
@pytest.mark.parametrize("markup", ["", "   ", "<html><body></body></html>", "<html><body><ul class='poster-list'></ul></body></html>"])
def test_empty_markup_yields_empty_list(kind, markup):
    assert scraper.extract_listing(markup, kind) == []


def test_records_without_a_name_are_dropped():
    html = """
    <html><body><ul class="poster-list">
      <li class="poster-container"><div class="film-poster"></div></li>
      <li class="poster-container"><div class="film-poster" data-film-name="Heat"></div></li>
    </ul></body></html>
    """
    assert scraper.extract_watchlist(HTMLParser(html)) == [WatchlistEntry("Heat", None)]


def test_yearless_duplicate_from_second_layout_is_merged():
    html = """
    <html><body>
      <li class="film-detail"><h2><a>Heat</a> <small class="metadata"><a>1995</a></small></h2></li>
      <ul class="poster-list"><li><img alt="Poster for Heat" /></li></ul>
    </body></html>
    """
    assert scraper.extract_watchlist(HTMLParser(html)) == [WatchlistEntry("Heat", "1995")]


def test_extract_watchlist_poster_layout_with_links():
    html = """
    <html><body><ul class="poster-list">
      <li class="poster-container"><div class="poster"><a href="/film/solaris/">Solaris (1972)</a></div></li>
      <li class="poster-container"><div class="poster" data-film-title="Stalker" data-film-year="1979"></div></li>
    </ul></body></html>
    """
    assert scraper.extract_watchlist(HTMLParser(html)) == [
        WatchlistEntry("Solaris", "1972"),
        WatchlistEntry("Stalker", "1979"),
    ]


def test_extract_diary_table_rows():
    html = """
    <html><body><table id="diary-table"><tbody>
      <tr class="diary-entry-row">
        <td class="td-day"><a href="/alice/films/diary/for/2024/01/02/">02</a></td>
        <td class="td-film-details"><h3 class="headline-3"><a href="/alice/film/heat/">Heat</a></h3></td>
        <td class="td-released"><span>1995</span></td>
      </tr>
      <tr class="diary-entry-row">
        <td class="td-film-details"><h3 class="headline-3"><a href="/alice/film/alien/">Alien</a></h3></td>
        <td class="td-released"><span>1979</span></td>
      </tr>
    </tbody></table></body></html>
    """
    assert scraper.extract_diary(HTMLParser(html)) == [
        DiaryEntry("Heat", "1995"),
        DiaryEntry("Alien", "1979"),
    ]


def test_extract_diary_grid_and_bare_title_layouts():
    grid = """
    <html><body><ul class="poster-list">
      <li class="griditem"><div class="react-component" data-item-name="Heat (1995)"></div></li>
    </ul></body></html>
    """
    bare = """
    <html><body><h3 class="diary-entry-title"><a href="/alice/film/alien/">Alien (1979)</a></h3></body></html>
    """
    assert scraper.extract_diary(HTMLParser(grid)) == [DiaryEntry("Heat", "1995")]
    assert scraper.extract_diary(HTMLParser(bare)) == [DiaryEntry("Alien", "1979")]


def test_parse_diary_feed_skips_channel_title_and_list_posts():
    feed = """<?xml version="1.0" encoding="utf-8"?>
    <rss version="2.0"><channel>
      <title>Letterboxd - alice</title>
      <item><title>Heat (1995)</title></item>
      <item><title><![CDATA[Parasite, 2019 - ★★★★★]]></title></item>
      <item><title>Blade Runner 2049 (2017)</title></item>
      <item><title>Tom &amp; Jerry (1992)</title></item>
      <item><title>My favourite horror films</title></item>
      <item><title>Heat (1995)</title></item>
    </channel></rss>
    """
    assert scraper.parse_diary_feed(feed) == [
        DiaryEntry("Heat", "1995"),
        DiaryEntry("Parasite", "2019"),
        DiaryEntry("Blade Runner 2049", "2017"),
        DiaryEntry("Tom & Jerry", "1992"),
    ]


def test_parse_diary_feed_handles_missing_or_title_only_feed():
    assert scraper.parse_diary_feed(None) == []
    assert scraper.parse_diary_feed("<rss><channel><title>Letterboxd - bob</title></channel></rss>") == []


def test_clean_username_and_urls():
    assert scraper.clean_username("  @Alice/ ") == "alice"
    assert scraper.clean_username("/bob_smith/") == "bob_smith"
    assert scraper.clean_username("Bad Name!") == "badname"
    assert scraper.clean_username(None) == ""

    assert scraper.listing_url("alice", ListingKind.RATINGS) == "https://letterboxd.com/alice/films/ratings/"
    assert scraper.listing_url("alice", ListingKind.DIARY, 3) == "https://letterboxd.com/alice/films/diary/page/3/"
    assert scraper.listing_url("alice", ListingKind.WATCHLIST, 2) == "https://letterboxd.com/alice/watchlist/page/2/"
    assert scraper.feed_url("alice") == "https://letterboxd.com/alice/rss/"
