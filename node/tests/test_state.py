import pytest

from cardvote.config import MAX_VOTE_EVENTS
from cardvote.errors import BackendError, BadRequest
from cardvote.models import CommentAuthor
from cardvote.state import GLOBAL_KEY, VOTE_EVENTS_KEY, LocalActivityStore
from cardvote.storage import FileStorage

ME = CommentAuthor(name="me", icon_url="/me.png")


def test_unknown_card_reads_as_zero_record(local_activity):
    record = local_activity.get("nope")
    assert (record.count_a, record.count_b, record.comments, record.user_selected_option) == (0, 0, [], None)


def test_votes_are_cumulative_and_last_selection_wins(local_activity):
    local_activity.add_vote("seed-0", "A")
    local_activity.add_vote("seed-0", "B")
    record = local_activity.get("seed-0")
    assert record.count_a == 1
    assert record.count_b == 1
    assert record.user_selected_option == "B"


def test_same_option_twice_increments_twice(local_activity):
    local_activity.add_vote("seed-1", "A")
    local_activity.add_vote("seed-1", "A")
    assert local_activity.get("seed-1").count_a == 2


def test_invalid_option_is_rejected_without_mutation(local_activity, storage):
    with pytest.raises(BadRequest):
        local_activity.add_vote("seed-0", "C")
    assert storage.get(GLOBAL_KEY) is None


def test_comments_append_in_order_with_distinct_ids(local_activity):
    first = local_activity.add_comment("seed-0", ME, "first")
    second = local_activity.add_comment("seed-0", ME, "first")
    comments = local_activity.get("seed-0").comments
    assert [c.text for c in comments] == ["first", "first"]
    assert [c.id for c in comments] == [first.id, second.id]
    assert first.id != second.id
    assert first.id.startswith("comment-")


def test_blank_comment_is_rejected(local_activity):
    with pytest.raises(BadRequest):
        local_activity.add_comment("seed-0", ME, "   ")
    assert local_activity.get("seed-0").comments == []


def test_selection_is_scoped_to_identity(local_activity, identity):
    local_activity.add_vote("seed-0", "A")
    identity.login_as_demo_user("user1")
    record = local_activity.get("seed-0")
    # counters belong to the device, the selection to the identity
    assert record.count_a == 1
    assert record.user_selected_option is None


def test_get_all_covers_cards_with_only_a_selection(local_activity, storage, identity):
    storage.set("vote_card_activity_" + identity.activity_id(), {"x": {"userSelectedOption": "A"}})
    local_activity.add_comment("y", ME, "hello")
    everything = local_activity.get_all()
    assert set(everything) == {"x", "y"}
    assert everything["x"].user_selected_option == "A"
    assert everything["x"].count_a == 0


def test_malformed_stored_data_reads_as_empty(local_activity, storage):
    storage.set(GLOBAL_KEY, {"seed-0": {"countA": -3, "countB": "many", "comments": "nope"}})
    record = local_activity.get("seed-0")
    assert (record.count_a, record.count_b, record.comments) == (0, 0, [])


def test_vote_events_are_capped_and_newest_first(local_activity, storage):
    for i in range(MAX_VOTE_EVENTS + 5):
        local_activity.add_vote(f"card-{i}", "A")
    assert len(storage.get(VOTE_EVENTS_KEY)) == MAX_VOTE_EVENTS
    events = local_activity.get_vote_events()
    assert events[0].date >= events[-1].date


def test_comment_likes(local_activity):
    comment = local_activity.add_comment("seed-0", ME, "like me")
    assert local_activity.add_comment_like("seed-0", comment.id) is True
    assert local_activity.add_comment_like("seed-0", "missing") is False
    assert local_activity.get("seed-0").comments[0].like_count == 1


def test_reset_keeps_comments(local_activity):
    local_activity.add_vote("seed-0", "A")
    local_activity.add_comment("seed-0", ME, "keep")
    local_activity.reset_vote_counts()
    record = local_activity.get("seed-0")
    assert (record.count_a, len(record.comments)) == (0, 1)


def test_cards_commented_by(local_activity):
    local_activity.add_comment("a", ME, "x")
    local_activity.add_comment("b", CommentAuthor(name="other"), "y")
    assert local_activity.card_ids_commented_by("me") == ["a"]


def test_subscribers_hear_about_mutations(local_activity):
    calls = []
    unsubscribe = local_activity.subscribe(lambda: calls.append(1))
    local_activity.add_vote("seed-0", "A")
    unsubscribe()
    local_activity.add_vote("seed-0", "A")
    assert calls == [1]


def test_file_storage_survives_reopen(tmp_path, identity):
    path = tmp_path / "device.json"
    store = LocalActivityStore(FileStorage(path), identity)
    store.add_vote("seed-0", "B")

    reopened = LocalActivityStore(FileStorage(path), identity)
    assert reopened.get("seed-0").count_b == 1
    assert reopened.get("seed-0").user_selected_option == "B"


def test_file_storage_write_failure_leaves_state_untouched(tmp_path, identity, monkeypatch):
    storage = FileStorage(tmp_path / "device.json")
    store = LocalActivityStore(storage, identity)

    def broken_flush():
        raise BackendError("STORAGE_WRITE_FAILED")

    monkeypatch.setattr(storage, "_flush", broken_flush)
    with pytest.raises(BackendError):
        store.add_vote("seed-0", "A")
    assert store.get("seed-0").count_a == 0


def test_vote_is_all_or_nothing_when_the_selection_write_fails(tmp_path, identity, monkeypatch):
    path = tmp_path / "device.json"
    storage = FileStorage(path)
    store = LocalActivityStore(storage, identity)
    real_flush = storage._flush
    user_key = "vote_card_activity_" + identity.activity_id()

    def flush_fails_with_selection():
        if user_key in storage._data:
            raise BackendError("STORAGE_WRITE_FAILED")
        real_flush()

    monkeypatch.setattr(storage, "_flush", flush_fails_with_selection)
    with pytest.raises(BackendError):
        store.add_vote("seed-0", "A")

    assert store.get("seed-0") == LocalActivityStore(FileStorage(path), identity).get("seed-0")
    record = store.get("seed-0")
    assert (record.count_a, record.user_selected_option) == (0, None)
    assert storage.get(GLOBAL_KEY) is None
    assert storage.get(VOTE_EVENTS_KEY) is None


def test_set_many_rolls_back_every_key(tmp_path):
    storage = FileStorage(tmp_path / "device.json")
    storage.set("kept", 1)

    def broken_flush():
        raise BackendError("STORAGE_WRITE_FAILED")

    storage._flush = broken_flush
    with pytest.raises(BackendError):
        storage.set_many({"kept": 2, "new": 3})
    assert storage.get("kept") == 1
    assert storage.get("new") is None
