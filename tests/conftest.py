import time

import pytest

from app import create_app
from common.db.session import build_engine, build_session_factory, init_db
from common.services.change_feed import ChangeFeed
from common.services.ledger_store import LedgerStore, OrderDraft
from common.services.submission_service import SubmissionService
from common.services.toggle_service import ToggleService
from config import StoreFrontConfig


_ENV_KEYS = (
    "DATABASE_URL",
    "UNIT_PRICE",
    "CURRENCY",
    "LOG_LEVEL",
    "FEED_BUFFER_SIZE",
    "FEED_KEEPALIVE_SECONDS",
    "CASHAPP_CASHTAG",
    "PRODUCT_NAME",
    "ADMIN_PASSWORD",
    "IDENTITY_ENABLED",
    "STORE_DATA_DIR",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{(tmp_path / 'orders.db').as_posix()}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return LedgerStore(session_factory)


@pytest.fixture
def feed(store):
    feed = ChangeFeed(store, buffer_size=64)
    yield feed
    feed.close()


@pytest.fixture
def submissions(store):
    return SubmissionService(store)


@pytest.fixture
def toggles(store):
    return ToggleService(store)


@pytest.fixture
def make_draft():
    def _make(name="Alice", brand_request="", notes="", **sizes):
        return OrderDraft(name=name, sizes=sizes, brand_request=brand_request, notes=notes)

    return _make


@pytest.fixture
def wait_until():
    def _wait(predicate, timeout=3.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait


@pytest.fixture
def app(tmp_path, clean_env):
    clean_env.setenv("ADMIN_PASSWORD", "letmein")
    clean_env.setenv("FEED_KEEPALIVE_SECONDS", "0.2")
    app = create_app(StoreFrontConfig.load(data_dir=tmp_path / "data"))
    app.config["TESTING"] = True
    yield app
    components = app.extensions["campus_threads_components"]
    components["feed"].close()
    components["engine"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    resp = client.post("/admin/login", json={"password": "letmein"})
    assert resp.status_code == 200
    return client
