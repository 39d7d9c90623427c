"""Tests for search query construction from user preferences."""

from jobcurator.core.schemas import UserPreferences
from jobcurator.pipeline.queries import FALLBACK_KEYWORDS, build_queries, location_query


class TestLocationQuery:
    def test_close_to_home(self) -> None:
        prefs = UserPreferences(locations=["closetohome"], city="Austin", state="TX")
        assert location_query(prefs) == "Austin, TX"

    def test_close_to_home_without_city_falls_through(self) -> None:
        prefs = UserPreferences(locations=["closetohome", "remote"])
        assert location_query(prefs) == "remote"

    def test_remote(self) -> None:
        assert location_query(UserPreferences(locations=["remote"])) == "remote"

    def test_anywhere(self) -> None:
        assert location_query(UserPreferences(locations=["anywhere"])) == ""


class TestBuildQueries:
    def test_keywords_first_then_job_types(self) -> None:
        prefs = UserPreferences(keywords=["tutor"], job_types=["helping"])
        queries = build_queries(prefs, limit=3)
        assert [q.keywords for q in queries] == ["tutor", "customer service", "support"]

    def test_terms_deduplicated_case_insensitively(self) -> None:
        prefs = UserPreferences(keywords=["Tutor"], job_types=["helping"])
        assert [q.keywords for q in build_queries(prefs)] == [
            "Tutor", "customer service", "support", "assistance",
        ]

    def test_unknown_job_type_searched_verbatim(self) -> None:
        prefs = UserPreferences(job_types=["lifeguard"])
        assert [q.keywords for q in build_queries(prefs)] == ["lifeguard"]

    def test_fallback_query(self) -> None:
        [query] = build_queries(UserPreferences(locations=["remote"]))
        assert query.keywords == FALLBACK_KEYWORDS
        assert query.part_time is True
        assert query.remote is False

    def test_flags_from_preferences(self) -> None:
        prefs = UserPreferences(
            job_types=["quiet"], locations=["remote"], schedule_preference="daily",
        )
        query = build_queries(prefs)[0]
        assert query.remote is True
        assert query.part_time is False
        assert query.location == "remote"

    def test_non_daily_schedule_is_part_time(self) -> None:
        prefs = UserPreferences(job_types=["quiet"], schedule_preference="weekends")
        assert all(q.part_time for q in build_queries(prefs))
