"""Tests for semantic search and the recommendation engine."""

import pytest

from errors import TransientServiceError
from models import Bucket, Level
from recommender import RecommendationEngine, build_profile_query, search_filters
from search import UniversitySearch, cosine_distances
from tests.conftest import COMPLETE_SECTIONS, FakeLLM, FakeSearch, ranked_results


class TestCosineDistances:

    def test_identical_and_orthogonal(self):
        distances = cosine_distances([1, 0], [[2, 0], [0, 1], [1, 1]])
        assert distances.tolist() == pytest.approx([0.0, 1.0, 1 - 2 ** -0.5])

    def test_zero_vectors(self):
        assert cosine_distances([0, 0], [[1, 0]]).tolist() == [1.0]
        assert cosine_distances([1, 0], [[0, 0], [3, 0]]).tolist() == pytest.approx([1.0, 0.0])


class TestUniversitySearch:

    def test_ranks_by_distance_within_country(self, session_factory):
        search = UniversitySearch(session_factory, FakeLLM())

        results = search.search("query", 10, {"country": "USA"})

        # Nowhere Institute has no embedding; Toronto is filtered out by country
        assert [r["university_id"] for r in results] == ["stanford", "asu"]
        assert results[0]["distance"] == pytest.approx(0.0)
        assert results[0]["distance"] <= results[1]["distance"]

    def test_k_limits_results(self, session_factory):
        results = UniversitySearch(session_factory, FakeLLM()).search("query", 1)
        assert len(results) == 1

    def test_max_tuition_filter(self, session_factory):
        results = UniversitySearch(session_factory, FakeLLM()).search("query", 10, {"max_tuition": 30000})
        assert {r["university_id"] for r in results} == {"asu", "toronto"}

    def test_embedding_failure_propagates(self, session_factory):
        search = UniversitySearch(session_factory, FakeLLM(error=TransientServiceError("down")))
        with pytest.raises(TransientServiceError):
            search.search("query", 5)


class TestProfileQuery:

    def test_query_mentions_goals(self):
        query = build_profile_query(COMPLETE_SECTIONS)
        assert "Masters in Data Science" in query
        assert "IELTS 7.5" in query

    def test_filters_use_first_country(self):
        assert search_filters(COMPLETE_SECTIONS) == {"country": "USA", "max_tuition": None}
        assert search_filters({}) == {"country": None, "max_tuition": None}


class TestRecommend:

    def test_buckets_in_rank_order(self):
        search = FakeSearch(ranked_results({"asu": 0.10, "toronto": 0.20, "stanford": 0.30}))
        result = RecommendationEngine(search).recommend(COMPLETE_SECTIONS, 12)

        assert result.count == 3
        asu, toronto, stanford = result.universities
        assert (asu.bucket, asu.acceptance_chance, asu.cost_level) == (Bucket.SAFE, Level.HIGH, Level.LOW)
        assert (toronto.bucket, toronto.cost_level) == (Bucket.TARGET, Level.MEDIUM)
        assert (stanford.bucket, stanford.cost_level) == (Bucket.DREAM, Level.HIGH)

    def test_respects_k(self):
        search = FakeSearch(ranked_results({"asu": 0.10, "toronto": 0.20, "stanford": 0.30}))
        result = RecommendationEngine(search).recommend(COMPLETE_SECTIONS, 2)

        assert result.count == 2
        assert search.calls[0]["k"] == 2

    def test_search_failure_is_explicit(self):
        result = RecommendationEngine(FakeSearch(error=TransientServiceError("down"))).recommend(COMPLETE_SECTIONS)

        assert result.universities == []
        assert result.count == 0
        assert result.error


class TestFitFor:

    def test_missing_universities_default_to_dream(self):
        search = FakeSearch(ranked_results({"asu": 0.10}))
        fit = RecommendationEngine(search).fit_for(COMPLETE_SECTIONS, ["asu", "stanford"])

        assert fit["asu"].bucket == Bucket.SAFE
        assert fit["asu"].cost_level == Level.LOW
        assert (fit["stanford"].bucket, fit["stanford"].acceptance_chance, fit["stanford"].cost_level) == (
            Bucket.DREAM, Level.LOW, Level.HIGH,
        )
        assert search.calls[0]["k"] == 50

    def test_search_failure_raises(self):
        engine = RecommendationEngine(FakeSearch(error=RuntimeError("down")))
        with pytest.raises(TransientServiceError):
            engine.fit_for(COMPLETE_SECTIONS, ["asu"])
