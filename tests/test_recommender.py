import numpy as np
import pytest

from letterboxd_taste import recommender
from letterboxd_taste.catalog import FilmMetadata
from letterboxd_taste.config import PENALTY_CAP


def _meta(catalog_id, title, directors=(), cast=(), vote_count=0, popularity=0.0):
    return FilmMetadata(
        catalog_id=catalog_id,
        title=title,
        directors=tuple(directors),
        cast=tuple(cast),
        vote_count=vote_count,
        popularity=popularity,
    )


def test_cosine_similarity_properties():
    a = [1.0, 2.0, 3.0]
    b = [3.0, -1.0, 0.5]

    assert recommender.cosine_similarity(a, a) == pytest.approx(1.0)
    assert recommender.cosine_similarity(a, b) == pytest.approx(recommender.cosine_similarity(b, a))
    assert recommender.cosine_similarity(a, [-x for x in a]) == pytest.approx(-1.0)
    assert recommender.cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
    assert recommender.cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert recommender.cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_mainstream_penalty_is_capped_and_monotone():
    assert recommender.mainstream_penalty(0, 0) == 0.0
    assert recommender.mainstream_penalty(10_000, 20) == pytest.approx(0.05 + 0.01)
    assert recommender.mainstream_penalty(1_000_000, 5000) == PENALTY_CAP
    assert recommender.mainstream_penalty(10_000_000, 100_000) == 0.25

    votes = [0, 100, 5_000, 20_000, 49_000, 80_000]
    penalties = [recommender.mainstream_penalty(v, 10) for v in votes]
    assert penalties == sorted(penalties)
    assert all(0.0 <= p <= PENALTY_CAP for p in penalties)


def test_overlap_bonus_counts_directors_and_cast():
    seed_text = "heat | crime | al pacino, robert de niro | michael mann | cops"
    meta = _meta(1, "The Insider", directors=["Michael Mann"], cast=["Al Pacino", "Russell Crowe"])

    directors, cast = recommender.overlap_matches(meta, seed_text)

    assert directors == ["Michael Mann"]
    assert cast == ["Al Pacino"]
    assert recommender.overlap_bonus(meta, seed_text) == pytest.approx(0.08 + 0.02)
    assert recommender.overlap_bonus(_meta(2, "Other"), seed_text) == 0.0


def test_overlap_bonus_is_uncapped():
    cast = [f"Actor {i}" for i in range(8)]
    seed_text = " ".join(c.lower() for c in cast) + " director a director b"
    meta = _meta(1, "Ensemble", directors=["Director A", "Director B"], cast=cast)

    assert recommender.overlap_bonus(meta, seed_text) == pytest.approx(2 * 0.08 + 8 * 0.02)


def test_score_candidates_orders_by_score_and_explains():
    films = [
        _meta(1, "Far", vote_count=0),
        _meta(2, "Near", directors=["Jane Doe"], vote_count=0),
        _meta(3, "Blockbuster", vote_count=2_000_000, popularity=900),
    ]
    embeddings = np.array([[0.0, 1.0], [1.0, 0.1], [1.0, 0.0]])
    ranked = recommender.score_candidates(films, embeddings, np.array([1.0, 0.0]), "jane doe")

    assert [c.title for c in ranked] == ["Near", "Blockbuster", "Far"]
    near, blockbuster, far = ranked
    assert near.bonus == pytest.approx(0.08)
    assert near.reasons == ["Directed by Jane Doe"]
    assert blockbuster.penalty == PENALTY_CAP
    assert "Widely seen" in blockbuster.reasons
    assert blockbuster.score == pytest.approx(1.0 - PENALTY_CAP)
    assert far.score == pytest.approx(0.0)
    for c in ranked:
        assert c.score == pytest.approx(c.similarity + c.bonus - c.penalty)


def test_score_candidates_ties_keep_pool_order():
    films = [_meta(i, f"Film {i}") for i in range(5)]
    embeddings = np.ones((5, 3))

    ranked = recommender.score_candidates(films, embeddings, np.ones(3), "")

    assert [c.catalog_id for c in ranked] == [0, 1, 2, 3, 4]


def test_missing_embeddings_score_zero_similarity():
    films = [_meta(1, "A"), _meta(2, "B")]

    ranked = recommender.score_candidates(films, np.empty((0, 0)), np.array([1.0, 1.0]), "")

    assert [c.similarity for c in ranked] == [0.0, 0.0]
    assert [c.catalog_id for c in ranked] == [1, 2]
