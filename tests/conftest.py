import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

from fakes import PLACE_ROWS, FakeNotifier, FakePlatform, MemoryStore
from campos.infra import postgres
from campos.main import app
from campos.runtime import build_core
from campos.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from campos.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop(*args, **kwargs):
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""API tests authenticate with the X-User-Id header, only accepted in dev."""
	original_env = settings.environment
	original_timezone = settings.day_timezone
	settings.environment = "dev"
	settings.day_timezone = "UTC"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.day_timezone = original_timezone


@pytest.fixture
def store():
	memory = MemoryStore()
	memory.seed("places", *PLACE_ROWS)
	return memory


@pytest.fixture
def platform():
	return FakePlatform()


@pytest.fixture
def notifier():
	return FakeNotifier()


@pytest_asyncio.fixture
async def core(store):
	services = build_core(store)
	try:
		yield services
	finally:
		await services.shutdown()


@pytest_asyncio.fixture
async def api_client(core):
	app.state.core = core
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		app.state.core = None
