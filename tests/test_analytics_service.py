from datetime import date

import pytest

from services import analytics_service
from services.exceptions import ContentValidationError


@pytest.fixture
def catalog(add_content):
    add_content(platform="Netflix", title="A", year=2020, assigned_genre="Drama", primary_language="Hindi",
                duration_hours=0.5, release_date=date(2020, 3, 1), dubbing={"hindi": True, "tamil": True})
    add_content(platform="Netflix", title="B", year=2021, assigned_genre="Comedy", primary_language="Tamil",
                duration_hours=2.5, release_date=date(2021, 5, 1), assigned_format="Series")
    add_content(platform="Hotstar", title="C", year=2021, assigned_genre="Drama", primary_language="Hindi",
                duration_hours=60, dubbing={"hindi": True})
    add_content(platform="Zee5", title="D", year=2022, assigned_genre="", primary_language="Tamil")
    add_content(platform="Zee5", title="E", year=2022, is_active=False)


def test_platform_distribution(catalog):
    result = analytics_service.platform_distribution({})
    assert result["data"] == [
        {"platform": "Netflix", "count": 2},
        {"platform": "Hotstar", "count": 1},
        {"platform": "Zee5", "count": 1},
    ]
    assert result["total"] == 4


def test_distribution_respects_filters_and_sort(catalog):
    result = analytics_service.language_stats({"platform": "Netflix,Zee5", "sortBy": "language", "sortOrder": "asc"})
    assert [row["language"] for row in result["data"]] == ["Hindi", "Tamil"]
    assert result["filters"]["platform"] == "Netflix,Zee5"


def test_genre_trends_skip_blank_genres(catalog):
    data = analytics_service.genre_trends({})["data"]
    assert [entry["genre"] for entry in data] == ["Drama", "Comedy"]
    assert data[0]["data"] == [{"year": 2020, "count": 1}, {"year": 2021, "count": 1}]
    assert data[0]["total"] == 2


def test_yearly_releases_default_window(catalog, add_content):
    add_content(title="Old", year=1999)
    result = analytics_service.yearly_releases({})
    assert [row["year"] for row in result["data"]] == [2020, 2021, 2022]
    assert result["total"] == 4


def test_dubbing_analysis(catalog):
    result = analytics_service.dubbing_analysis({})
    assert result["language_breakdown"][0] == {"language": "hindi", "count": 2, "platforms": ["Hotstar", "Netflix"]}
    assert result["dubbing_distribution"] == [
        {"dubbing_count": 0, "content_count": 2},
        {"dubbing_count": 1, "content_count": 1},
        {"dubbing_count": 2, "content_count": 1},
    ]


def test_duration_analysis_ranges(catalog):
    result = analytics_service.duration_analysis({})
    assert result["ranges"] == [
        {"range": "0-1 hrs", "count": 1},
        {"range": "2-3 hrs", "count": 1},
        {"range": "50+", "count": 1},
    ]
    assert result["statistics"]["total_content"] == 3
    assert result["statistics"]["max_duration"] == 60


def test_duration_analysis_without_data():
    result = analytics_service.duration_analysis({})
    assert result == {"statistics": {}, "ranges": [], "filters": {"sort_by": "count", "sort_order": "desc"}}


def test_dashboard_summary_ignores_filters(catalog):
    summary = analytics_service.dashboard_summary({"platform": "Zee5"})
    assert summary["total_content"] == 4
    assert summary["total_platforms"] == 3
    assert summary["total_genres"] == 2
    assert [item["title"] for item in summary["recent_content"]] == ["B", "A"]


def test_custom_analytics(catalog):
    result = analytics_service.custom_analytics({"groupBy": "platform", "metric": "avgDuration"})
    netflix = next(row for row in result["data"] if row["platform"] == "Netflix")
    assert netflix["avg_duration"] == 1.5


def titles(params):
    rows = analytics_service.custom_analytics({"groupBy": "title", **params})["data"]
    return {row["title"] for row in rows}


def test_year_range_narrowed_by_start_year_on_stored_rows(catalog):
    assert titles({"year": "2020-2023"}) == {"A", "B", "C", "D"}
    assert titles({"year": "2020-2023", "startYear": "2021"}) == {"B", "C", "D"}
    assert titles({"year": ["2020-2021", "2022"]}) == {"A", "B", "C", "D"}


def test_has_dubbing_false_ignores_popularity_on_stored_rows(catalog):
    assert titles({"hasDubbing": "false", "minPopularity": "1"}) == {"B", "D"}
    assert titles({"hasDubbing": "true", "minPopularity": "2"}) == {"A"}


def test_custom_analytics_validation(catalog):
    with pytest.raises(ContentValidationError):
        analytics_service.custom_analytics({})
    with pytest.raises(ContentValidationError):
        analytics_service.custom_analytics({"groupBy": "platform", "metric": "median"})
    with pytest.raises(ContentValidationError):
        analytics_service.custom_analytics({"groupBy": "nonsense"})


def test_monthly_release_trend(catalog):
    result = analytics_service.monthly_release_trend({"startDate": "2020-01-01", "endDate": "2021-12-31"})
    assert result["data"] == [{"period": "2020-03", "count": 1}, {"period": "2021-05", "count": 1}]


def test_dubbing_penetration(catalog):
    result = analytics_service.dubbing_penetration({})
    assert result["overall"]["total"] == 4
    assert result["overall"]["dubbed"] == 2
    assert result["overall"]["pct_dubbed"] == 50
    assert result["by_platform"][0]["platform"] == "Hotstar"


def test_top_dubbed_languages(catalog):
    result = analytics_service.top_dubbed_languages({"limit": "1"})
    assert result["data"] == [{"language": "hindi", "count": 2}]


def test_data_quality_score(catalog):
    result = analytics_service.data_quality_score({})
    assert result["overall"]["total"] == 4
    assert sum(bucket["count"] for bucket in result["distribution"]) == 4


def test_content_freshness(catalog):
    result = analytics_service.content_freshness({"platform": "Netflix"})
    assert result["overall"]["total"] == 2
    assert result["overall"]["min_age_days"] >= 0
    assert [item["platform"] for item in result["by_platform"]] == ["Netflix"]


def test_multi_dimensional(catalog):
    result = analytics_service.multi_dimensional({"dimensions": "platform,type,bogus"})
    assert result["dimensions"] == ["platform", "type"]
    assert result["platform"][0] == {"platform": "Netflix", "count": 2}
    assert result["summary"]["total_content"] == 4


def test_advanced_slicing_pagination(catalog):
    result = analytics_service.advanced_slicing({"groupBy": "platform", "secondaryGroupBy": "genre", "limit": "2"})
    assert result["pagination"] == {"page": 1, "limit": 2, "total": 4, "pages": 2}
    assert len(result["data"]) == 2
    assert set(result["data"][0]) >= {"primary", "secondary", "count", "avg_duration"}


def test_comparative(catalog):
    result = analytics_service.comparative({"compareBy": "platform", "metric": "avgDuration"})
    assert result["data"][0]["segment"] == "Hotstar"
    assert result["insights"]["total_segments"] == 3
    assert result["insights"]["top_performer"]["segment"] == "Hotstar"


def test_public_variants_return_data_only(catalog):
    assert analytics_service.public_platform_distribution()[0] == {"platform": "Netflix", "count": 2}
    trends = analytics_service.public_genre_trends({"startYear": "2021", "platform": "Zee5"})
    assert [entry["genre"] for entry in trends] == ["Comedy", "Drama"]
