import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

from cardvote import kv
from cardvote.bookmarks import CollectionStore
from cardvote.coordinator import build_coordinator
from cardvote.identity import IdentityResolver
from cardvote.main import app
from cardvote.remote import RemoteActivityClient
from cardvote.state import LocalActivityStore
from cardvote.storage import MemoryStorage


@pytest.fixture(autouse=True)
def no_shared_store():
    """Every test starts with the shared store unconfigured."""
    original = kv.get_kv()
    kv.set_kv_client(None)
    try:
        yield
    finally:
        kv.set_kv_client(original)


@pytest_asyncio.fixture
async def fake_redis():
    client = FakeRedis(decode_responses=True)
    kv.set_kv_client(client)
    try:
        yield client
    finally:
        kv.set_kv_client(None)
        await client.flushall()


@pytest_asyncio.fixture
async def api_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def remote(api_client):
    return RemoteActivityClient(client=api_client)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def identity(storage):
    return IdentityResolver(storage)


@pytest.fixture
def local_activity(storage, identity):
    return LocalActivityStore(storage, identity)


@pytest.fixture
def collections(storage, identity):
    return CollectionStore(storage, identity)


@pytest.fixture
def make_coordinator(storage):
    def _make(remote_client=None):
        return build_coordinator(storage=storage, remote=remote_client)
    return _make
