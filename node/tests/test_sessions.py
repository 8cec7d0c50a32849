import asyncio

import pytest

from cardvote import sessions
from cardvote.sessions import AtomicRegistry, BestEffortRegistry, build_registry, presence_key


class SlowDictStore:
    """Minimal get/set/delete store that yields to the loop on every call."""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        await asyncio.sleep(0)
        return self.data.get(key)

    async def set(self, key, value):
        await asyncio.sleep(0)
        self.data[key] = value
        return True

    async def delete(self, key):
        await asyncio.sleep(0)
        self.data.pop(key, None)


def test_build_registry_picks_variant(fake_redis):
    assert isinstance(build_registry(fake_redis, atomic=True), AtomicRegistry)
    assert isinstance(build_registry(fake_redis, atomic=False), BestEffortRegistry)


@pytest.mark.asyncio
async def test_atomic_concurrent_acquire_has_one_winner(fake_redis):
    registry = AtomicRegistry(fake_redis)
    results = await asyncio.gather(*(registry.try_acquire("user1") for _ in range(5)))
    assert sum(r.acquired for r in results) == 1
    assert {r.reason for r in results if not r.acquired} == {"ALREADY_ACTIVE"}


@pytest.mark.asyncio
async def test_release_is_idempotent(fake_redis):
    registry = AtomicRegistry(fake_redis)
    assert (await registry.try_acquire("user1")).acquired
    await registry.release("user1")
    await registry.release("user1")
    assert (await registry.try_acquire("user1")).acquired
    assert not (await registry.try_acquire("user1")).acquired


@pytest.mark.asyncio
async def test_presence_has_no_expiry(fake_redis):
    await AtomicRegistry(fake_redis).try_acquire("user3")
    assert await fake_redis.ttl(presence_key("user3")) == -1


@pytest.mark.asyncio
async def test_best_effort_serial_logins_conflict():
    registry = BestEffortRegistry(SlowDictStore())
    assert (await registry.try_acquire("user1")).acquired
    second = await registry.try_acquire("user1")
    assert (second.acquired, second.reason) == (False, "ALREADY_ACTIVE")
    await registry.release("user1")
    await registry.release("user1")
    assert (await registry.try_acquire("user1")).acquired


@pytest.mark.asyncio
async def test_best_effort_race_window_lets_both_in():
    # known limitation of the non-atomic path: both logins read "absent"
    registry = BestEffortRegistry(SlowDictStore())
    first, second = await asyncio.gather(registry.try_acquire("user1"), registry.try_acquire("user1"))
    assert first.acquired and second.acquired


@pytest.mark.asyncio
async def test_active_lists_known_identities_only(fake_redis):
    registry = AtomicRegistry(fake_redis)
    await registry.try_acquire("user2")
    await registry.try_acquire("user1")
    await fake_redis.set(presence_key("intruder"), "1")
    assert await registry.active() == ["user1", "user2"]


@pytest.mark.asyncio
async def test_api_second_login_conflicts(api_client, fake_redis):
    first, second = await asyncio.gather(
        api_client.post("/active-user", json={"userId": "user1"}),
        api_client.post("/active-user", json={"userId": "user1"}),
    )
    assert sorted([first.status_code, second.status_code]) == [200, 409]
    loser = first if first.status_code == 409 else second
    assert loser.json()["code"] == "ALREADY_LOGGED_IN"

    assert (await api_client.get("/active-user")).json() == {"userIds": ["user1"]}


@pytest.mark.asyncio
async def test_api_logout_then_login(api_client, fake_redis):
    assert (await api_client.post("/active-user", json={"userId": "user4"})).status_code == 200
    for _ in range(2):
        resp = await api_client.post("/active-user", json={"logoutUserId": "user4"})
        assert resp.json() == {"ok": True}
    assert (await api_client.post("/active-user", json={"userId": "user4"})).status_code == 200


@pytest.mark.asyncio
async def test_api_rejects_unknown_ids(api_client, fake_redis):
    assert (await api_client.post("/active-user", json={"userId": "root"})).status_code == 400
    assert (await api_client.post("/active-user", json={"logoutUserId": "root"})).status_code == 400
    assert (await api_client.post("/active-user", json={"userId": None})).json() == {"ok": True}


@pytest.mark.asyncio
async def test_api_best_effort_mode(api_client, fake_redis, monkeypatch):
    monkeypatch.setattr(sessions, "ACTIVE_USER_ATOMIC", False)
    assert (await api_client.post("/active-user", json={"userId": "user6"})).status_code == 200
    assert (await api_client.post("/active-user", json={"userId": "user6"})).status_code == 409


@pytest.mark.asyncio
async def test_api_without_store(api_client):
    assert (await api_client.get("/active-user")).json() == {"userIds": []}
    assert (await api_client.post("/active-user", json={"userId": "user1"})).json() == {"ok": True}
