import asyncio
import inspect
import os
import sys
from pathlib import Path

os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("ALLOW_REDIS_FALLBACK_DEV", "true")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-testing-only-do-not-use-in-production")
os.environ.setdefault("ENVELOPE_KEY", "test-envelope-key-for-testing-only-do-not-use-in-production")
# Tests inject an in-process fake Redis; never dial a real server.
os.environ.setdefault("REDIS_URL", "")

import fakeredis  # noqa: E402
import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jobboard.service.runtime import get_runtime, reset_runtime_for_tests  # noqa: E402
from jobboard.storage.models import utcnow  # noqa: E402
from jobboard.storage.redis_cache import SyncRedisCache  # noqa: E402

DEFAULT_PASSWORD = "Sup3r-Secret-pw"


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def fake_redis():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def cache(fake_redis):
    return SyncRedisCache(client=fake_redis)


@pytest.fixture
def runtime(cache):
    """The process runtime backed by the memory store and a fake Redis."""
    rt = get_runtime()
    rt.attach_cache(cache)
    return rt


@pytest.fixture
def outbox(runtime, monkeypatch):
    """Capture outgoing verification and reset emails as (kind, to, token)."""
    sent = []

    def _verification(to_email, token):
        sent.append(("verify", to_email, token))
        return True

    def _reset(to_email, token):
        sent.append(("reset", to_email, token))
        return True

    monkeypatch.setattr(runtime.email, "send_email_verification", _verification)
    monkeypatch.setattr(runtime.email, "send_password_reset", _reset)
    return sent


@pytest.fixture
def make_company(runtime):
    counter = {"n": 0}

    def _make(email=None, password=DEFAULT_PASSWORD, verified=True, name="Acme Corp"):
        counter["n"] += 1
        company = runtime.store.create_company(
            name=name,
            website="https://acme.example",
            headquarter="Berlin",
            logo="https://acme.example/logo.png",
            description="We build rockets and roller skates",
            email=email or f"company{counter['n']}@example.com",
            password_hash=runtime.auth._hash_password(password),
        )
        if verified:
            company = runtime.store.update_company(company.id, email_verified_at=utcnow())
        return company

    return _make


@pytest.fixture
def bearer(runtime):
    def _bearer(company):
        return f"Bearer {runtime.tokens.issue_access_token(company.id)}"

    return _bearer


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
