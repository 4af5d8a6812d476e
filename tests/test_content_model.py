import pytest
from sqlalchemy.exc import IntegrityError

from models.content import Content, DUBBING_LANGUAGES


def test_total_dubbings_follows_flags(session, add_content):
    content_id = add_content(dubbing={"hindi": True, "tamil": True})
    content = session.get(Content, content_id)
    assert content.total_dubbings == 2

    content.dubbing_arabic = True
    session.commit()
    assert content.total_dubbings == 3

    content.dubbing = {"hindi": False}
    session.commit()
    assert content.total_dubbings == 2


def test_dubbing_mapping_ignores_unknown_languages(session, add_content):
    content = session.get(Content, add_content(dubbing={"Hindi": 1, "klingon": True}))
    assert content.dubbing["hindi"] is True
    assert set(content.dubbing) == set(DUBBING_LANGUAGES)
    assert content.total_dubbings == 1


def test_duplicate_triple_rejected_among_active_rows(session, add_content):
    add_content(title="Same")
    with pytest.raises(IntegrityError):
        add_content(title="Same")


def test_soft_deleted_row_frees_the_triple(session, add_content):
    first = session.get(Content, add_content(title="Same"))
    first.is_active = False
    session.commit()

    second_id = add_content(title="Same")
    assert second_id != first.id


def test_to_dict_shape(session, add_content):
    data = session.get(Content, add_content(episodes=10, dubbing={"english": True})).to_dict()
    assert data["content_type"] == "Series"
    assert data["dubbing"]["english"] is True
    assert data["total_dubbings"] == 1
    assert data["is_active"] is True
