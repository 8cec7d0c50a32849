import pytest

from cardvote.drafts import DRAFTS_KEY, DraftStore
from cardvote.migrations import read_migrations
from cardvote.tags import (
    FAVORITE_TAGS_KEY_PREFIX,
    HIDDEN_TAGS_KEY,
    LEGACY_FAVORITE_TAGS_KEY,
    LEGACY_FAVORITE_TAGS_VERSION,
    FavoriteTagStore,
    HiddenTagStore,
)


@pytest.fixture
def favorites(storage, identity):
    return FavoriteTagStore(storage, identity)


def test_favorites_are_trimmed_and_case_insensitive(favorites):
    assert favorites.add("  Food ")
    assert not favorites.add("food")
    assert not favorites.add("   ")
    assert favorites.tags() == ["Food"]
    assert favorites.contains("FOOD")
    assert favorites.remove("fOoD")
    assert favorites.tags() == []


def test_toggle_reports_membership(favorites):
    assert favorites.toggle("travel") is True
    assert favorites.toggle("Travel") is False
    assert favorites.toggle(" ") is False
    assert favorites.tags() == []


def test_favorites_are_per_identity(favorites, identity):
    favorites.add("guest-tag")
    identity.login_as_demo_user("user1")
    assert favorites.tags() == []
    favorites.add("mine")
    identity.logout()
    identity.login_as_demo_user("user1")
    assert favorites.tags() == ["mine"]


def test_legacy_favorites_copied_once_for_demo_accounts(favorites, storage, identity):
    storage.set(LEGACY_FAVORITE_TAGS_KEY, ["music", "", 3, "sports"])
    identity.login_as_demo_user("user2")

    assert favorites.tags() == ["music", "sports"]
    assert read_migrations(storage, "user2") == {"favoriteTags": LEGACY_FAVORITE_TAGS_VERSION}
    assert storage.get(LEGACY_FAVORITE_TAGS_KEY) is not None

    favorites.remove("music")
    favorites.remove("sports")
    assert favorites.tags() == []
    assert storage.get(FAVORITE_TAGS_KEY_PREFIX + "user2") == []


def test_guests_do_not_inherit_legacy_favorites(favorites, storage, identity):
    storage.set(LEGACY_FAVORITE_TAGS_KEY, ["music"])
    assert favorites.tags() == []
    assert "favoriteTags" in read_migrations(storage, identity.activity_id())


def test_hidden_tags_are_shared_by_identities(storage, identity):
    hidden = HiddenTagStore(storage)
    assert hidden.add("Horror")
    identity.login_as_demo_user("user3")
    assert hidden.contains("horror")
    assert storage.get(HIDDEN_TAGS_KEY) == ["Horror"]
    assert not hidden.remove("comedy")


def test_tag_changes_notify(favorites):
    calls = []
    favorites.subscribe(lambda: calls.append(1))
    favorites.add("x")
    favorites.add("X")
    favorites.remove("x")
    assert calls == [1, 1]


def test_drafts_newest_first_and_deletable(storage):
    drafts = DraftStore(storage)
    first = drafts.add("  Ramen or udon? ")
    second = drafts.add("Beach or pool?")
    assert first.text == "Ramen or udon?"
    assert first.id != second.id
    assert [d.id for d in drafts.drafts()] == [second.id, first.id]

    assert drafts.add("   ") is None
    assert drafts.delete(first.id) is True
    assert drafts.delete(first.id) is False
    assert [d.text for d in drafts.drafts()] == ["Beach or pool?"]


def test_malformed_drafts_are_skipped(storage):
    storage.set(DRAFTS_KEY, [{"id": "draft-1", "text": "ok", "savedAt": "2026-01-01T00:00:00.000Z"}, "junk", {"id": 3}])
    assert [d.id for d in DraftStore(storage).drafts()] == ["draft-1"]
