import pytest

from models.user_activity import UserActivity
from services import content_service
from services.activity_service import create_user, list_activities, list_user_activities
from services.exceptions import (
    ContentNotFoundError, ContentValidationError, DuplicateContentError, UserNotFoundError,
)


def payload(**overrides):
    data = {
        "platform": "Netflix",
        "title": "Kota Factory",
        "primaryLanguage": "Hindi",
        "year": 2019,
        "assignedGenre": "Drama",
        "dubbing": {"Tamil": True, "telugu": True},
        "totalDubbings": 99,
    }
    data.update(overrides)
    return data


def test_create_derives_total_dubbings(user):
    created = content_service.create_content(payload(), user_id=user)
    assert created["total_dubbings"] == 2
    assert created["created_by"] == user
    assert created["source"] == "TBD"
    assert created["age_rating"] == "Not Rated"


def test_create_rejects_duplicate_triple():
    content_service.create_content(payload())
    with pytest.raises(DuplicateContentError):
        content_service.create_content(payload(assignedGenre="Comedy"))


def test_create_validation_details():
    with pytest.raises(ContentValidationError) as excinfo:
        content_service.create_content(payload(year=1800, source="Pirated"))
    fields = {detail["field"] for detail in excinfo.value.details}
    assert fields == {"year", "source"}


def test_create_with_unknown_user():
    with pytest.raises(UserNotFoundError):
        content_service.create_content(payload(), user_id=42)


def test_update_and_delete_with_unknown_user(session):
    created = content_service.create_content(payload())
    with pytest.raises(UserNotFoundError):
        content_service.update_content(created["id"], {"seasons": 3}, user_id=77)
    with pytest.raises(UserNotFoundError):
        content_service.delete_content(created["id"], user_id=77)

    assert content_service.get_content(created["id"])["seasons"] == 1
    assert [a.user_id for a in session.query(UserActivity).all()] == [None]


def test_check_duplicate_excludes_record():
    created = content_service.create_content(payload())
    assert content_service.check_duplicate("Netflix", "Kota Factory", 2019) is True
    assert content_service.check_duplicate("Netflix", "Kota Factory", 2019, exclude_id=created["id"]) is False


def test_update_is_partial_and_logged(user):
    created = content_service.create_content(payload(), user_id=user)
    updated = content_service.update_content(created["id"], {"dubbing": {"tamil": False}, "title": None},
                                             user_id=user)
    assert updated["title"] == "Kota Factory"
    assert updated["total_dubbings"] == 1

    actions = [item["action"] for item in list_user_activities(user)["items"]]
    assert actions.count("update") == 1


def test_update_into_existing_triple_conflicts():
    content_service.create_content(payload(title="First"))
    second = content_service.create_content(payload(title="Second"))
    with pytest.raises(DuplicateContentError):
        content_service.update_content(second["id"], {"title": "First"})


def test_soft_delete_hides_record():
    created = content_service.create_content(payload())
    assert content_service.delete_content(created["id"]) == {"id": created["id"], "is_active": False}

    with pytest.raises(ContentNotFoundError):
        content_service.get_content(created["id"])
    assert content_service.list_content()["pagination"]["total"] == 0
    assert content_service.check_duplicate("Netflix", "Kota Factory", 2019) is False


def test_list_filters_search_and_pagination():
    for index, platform in enumerate(["Netflix", "Netflix", "Hotstar"]):
        content_service.create_content(payload(title=f"Love Story {index}", platform=platform, year=2020 + index))
    content_service.create_content(payload(title="Other", platform="Netflix", year=2021))

    result = content_service.list_content({"platform": "Netflix", "search": "love", "limit": "1",
                                           "sortBy": "year", "sortOrder": "asc"})
    assert result["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
    assert result["items"][0]["title"] == "Love Story 0"


def test_list_ignores_invalid_sort_field():
    content_service.create_content(payload())
    result = content_service.list_content({"sortBy": "drop table"})
    assert result["pagination"]["total"] == 1


def test_content_stats():
    content_service.create_content(payload(title="A"))
    content_service.create_content(payload(title="B", platform="Hotstar", assignedGenre=""))
    stats = content_service.get_content_stats()
    assert stats["total"] == 2
    assert stats["by_genre"] == [{"genre": "Drama", "count": 1}]
    assert {row["platform"] for row in stats["by_platform"]} == {"Netflix", "Hotstar"}


def test_user_registration_and_activity_filters(session):
    account = create_user({"username": "analyst", "email": "Analyst@Example.com"})
    assert account["email"] == "analyst@example.com"
    assert account["role"] == "user"

    with pytest.raises(ContentValidationError):
        create_user({"username": "analyst", "email": "other@example.com"})
    with pytest.raises(ContentValidationError):
        create_user({"username": "ab", "email": "not-an-email"})

    content_service.create_content(payload(), user_id=account["id"])
    registered = list_activities({"action": "register"})
    assert registered["total"] == 1
    assert registered["items"][0]["username"] == "analyst"
    assert session.query(UserActivity).count() == 2


def test_activities_of_unknown_user():
    with pytest.raises(UserNotFoundError):
        list_user_activities(999)
