import pytest

from models.content import Content
from models.user import User
from services.universal_db_aggregator import (
    aggregate_db_data, assign_bucket, bucket_label, count_records, resolve_column,
    run_pipeline,
)


def seed(add_content):
    add_content(platform="Netflix", title="A", year=2020, duration_hours=0.5, dubbing={"hindi": True})
    add_content(platform="Netflix", title="B", year=2021, duration_hours=1, assigned_genre="")
    add_content(platform="Hotstar", title="C", year=2021, duration_hours=5, dubbing={"hindi": True, "tamil": True})
    add_content(platform="Zee5", title="D", year=2022, duration_hours=50, assigned_genre=None)
    add_content(platform="Zee5", title="E", year=2023, duration_hours=51, is_active=False)


def titles(rows):
    return sorted(row["title"] for row in rows)


def test_assign_bucket_boundaries():
    boundaries = [0, 1, 2, 3, 5, 10, 20, 50]
    assert [assign_bucket(v, boundaries) for v in (0.5, 1, 5, 50, 51)] == [0, 1, 4, -1, -1]
    assert assign_bucket(None, boundaries) == -1
    assert assign_bucket(-1, boundaries) == -1


def test_bucket_label_uses_labels_or_range():
    assert bucket_label(0, [0, 1, 2], "other") == "0-1"
    assert bucket_label(1, [0, 1, 2], "other", ["low", "high"]) == "high"
    assert bucket_label(-1, [0, 1, 2], "other") == "other"


def test_resolve_column_handles_dubbing_and_date_parts():
    assert resolve_column(Content, "dubbing.hindi") is not None
    assert resolve_column(Content, "release_date.year") is not None
    assert resolve_column(Content, "no_such_field") is None


def test_group_count_sorted_with_ties_by_key(add_content):
    seed(add_content)
    rows = run_pipeline(Content, [
        {"match": {"is_active": True}},
        {"group": {"by": {"platform": "platform"}, "metrics": [{"type": "count"}]}},
        {"sort": {"count": "desc"}},
    ])
    assert rows == [
        {"platform": "Netflix", "count": 2},
        {"platform": "Hotstar", "count": 1},
        {"platform": "Zee5", "count": 1},
    ]


def test_sort_then_skip_then_limit(add_content):
    seed(add_content)
    rows = run_pipeline(Content, [
        {"match": {"is_active": True}},
        {"group": {"by": {"year": "year"}, "metrics": [{"type": "count"}]}},
        {"sort": {"year": "desc"}},
        {"skip": 1},
        {"limit": 1},
    ])
    assert rows == [{"year": 2021, "count": 2}]


def test_operators(add_content):
    seed(add_content)

    def match(filters):
        return titles(run_pipeline(Content, [{"match": {"is_active": True, **filters}}]))

    assert match({"year": {"gte": 2021, "lt": 2022}}) == ["B", "C"]
    assert match({"platform": {"ne": "Netflix"}}) == ["C", "D"]
    assert match({"title": {"like": "A"}}) == ["A"]
    assert match({"platform": {"in": ["Hotstar", "Zee5"]}}) == ["C", "D"]
    assert match({"assigned_genre": {"not_in": ["Drama"]}}) == ["B", "D"]
    assert match({"assigned_genre": {"is_blank": True}}) == ["B", "D"]
    assert match({"assigned_genre": {"is_null": True}}) == ["D"]
    assert match({"assigned_genre": {"eq": None}}) == ["D"]
    assert match({"dubbing.tamil": True}) == ["C"]


def test_unknown_filter_field_is_ignored(add_content):
    seed(add_content)
    rows = run_pipeline(Content, [{"match": {"is_active": True, "bogus": 1}}])
    assert len(rows) == 4


def test_metrics(add_content):
    seed(add_content)
    rows = run_pipeline(Content, [
        {"match": {"is_active": True}},
        {"group": {"by": {}, "metrics": [
            {"type": "count"},
            {"type": "sum", "field": "duration_hours"},
            {"type": "max", "field": "year", "as": "latest"},
            {"type": "distinct", "field": "assigned_genre", "as": "genres"},
            {"type": "count_if", "field": "total_dubbings", "op": "gt", "value": 0, "as": "dubbed"},
        ]}},
    ])
    assert rows == [{"count": 4, "sum_duration_hours": 56.5, "latest": 2022, "genres": 2, "dubbed": 2}]


def test_bucket_stage_orders_buckets_with_default_last(add_content):
    seed(add_content)
    rows = run_pipeline(Content, [
        {"match": {}},
        {"bucket": {"field": "duration_hours", "boundaries": [0, 1, 2, 3, 5, 10, 20, 50], "default": "50+"}},
    ])
    assert rows == [
        {"bucket": "0-1", "count": 1},
        {"bucket": "1-2", "count": 1},
        {"bucket": "5-10", "count": 1},
        {"bucket": "50+", "count": 2},
    ]


def test_facets_share_base_match(add_content):
    seed(add_content)
    result = run_pipeline(Content, [
        {"match": {"is_active": True}},
        {"facet": {
            "platforms": [{"group": {"by": {"platform": "platform"}, "metrics": [{"type": "count"}]}},
                          {"sort": {"count": "desc"}}],
            "recent": [{"match": {"year": {"gte": 2021}}}, {"sort": {"year": "desc"}}, {"limit": 1},
                       {"project": ["title", "year"]}],
        }},
    ])
    assert [row["platform"] for row in result["platforms"]] == ["Netflix", "Hotstar", "Zee5"]
    assert result["recent"] == [{"title": "D", "year": 2022}]


def test_facet_must_be_last():
    with pytest.raises(ValueError):
        run_pipeline(Content, [{"facet": {"all": []}}, {"limit": 1}])


def test_match_after_group_is_rejected():
    with pytest.raises(ValueError):
        run_pipeline(Content, [
            {"group": {"by": {"platform": "platform"}}},
            {"match": {"platform": "Netflix"}},
        ])


def test_aggregate_db_data_formats(add_content):
    seed(add_content)
    result = aggregate_db_data(Content, filters={"is_active": True}, group_by=["platform"],
                               aggregations=[{"type": "count"}], order_by={"count": "desc"}, limit=2)
    assert result["count"] == 2
    assert result["limit"] == 2
    assert result["offset"] == 0
    assert count_records(Content, {"is_active": True}) == 4


def test_count_records_on_empty_table():
    assert count_records(User) == 0
