from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure repo root is on sys.path so `import coursecache` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coursecache.core.config import Settings  # noqa: E402
from coursecache.models.user import User  # noqa: E402
from coursecache.session import SessionContext  # noqa: E402
from tests.fakes import FakeRemoteApi  # noqa: E402

TEST_SETTINGS = Settings(
    app_env="test",
    log_level="debug",
    log_json=False,
    api_base_url="http://testserver",
    api_timeout=5.0,
    activity_log_capacity=20,
)

STUDENT = User(id=1, username="stu", role="student", email="stu@example.com", name="Stu Dent")
TEACHER = User(id=2, username="tea", role="teacher", email="tea@example.com", name="Tea Cher")
ADMIN = User(id=3, username="adm", role="admin", email="adm@example.com", name="Ad Min")


@pytest.fixture
def remote() -> FakeRemoteApi:
    return FakeRemoteApi(user_id=STUDENT.id)


def make_session(remote: FakeRemoteApi, user: User | None = STUDENT) -> SessionContext:
    return SessionContext.create(remote, TEST_SETTINGS, user=user)


@pytest.fixture
def session(remote: FakeRemoteApi) -> SessionContext:
    """Session signed in as a student."""
    return make_session(remote)


@pytest.fixture
def admin_session(remote: FakeRemoteApi) -> SessionContext:
    return make_session(remote, ADMIN)


@pytest.fixture
def anonymous_session(remote: FakeRemoteApi) -> SessionContext:
    return make_session(remote, None)


def metric_value(name: str, labels: dict[str, str] | None = None) -> float:
    """Current value of a sample in the default Prometheus registry (0 if absent)."""
    from prometheus_client import REGISTRY

    value = REGISTRY.get_sample_value(name, labels or {})
    return value or 0.0
