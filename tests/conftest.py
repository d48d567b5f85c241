"""Shared fixtures: an in-memory metafield store and ready-made settings."""

import itertools
from datetime import datetime, timezone

import pytest

from stage_sync import create_app
from stage_sync.config import Settings
from stage_sync.errors import UpstreamApiError
from stage_sync.stages import default_catalog

WEBHOOK_SECRET = "test-webhook-secret"
FIXED_NOW = datetime(2026, 10, 19, 8, 15, 0, tzinfo=timezone.utc)


class FakeMetafieldClient:
    """In-memory implementation of the list/create/update contract.

    ``fail_keys`` makes create/update of those keys answer 500;
    ``fail_list`` makes every list call answer 503.
    """

    def __init__(self, initial=None):
        self._ids = itertools.count(1000)
        self.store = {}  # owner_id -> list of metafield dicts
        self.calls = {"list": 0, "create": 0, "update": 0}
        self.fail_keys = set()
        self.fail_list = False
        for owner_id, mfs in (initial or {}).items():
            for mf in mfs:
                self._insert(str(owner_id), dict(mf))

    def _insert(self, owner_id, mf):
        mf.setdefault("id", next(self._ids))
        mf.setdefault("type", "single_line_text_field")
        self.store.setdefault(owner_id, []).append(mf)
        return mf

    def list(self, owner_type, owner_id):
        self.calls["list"] += 1
        if self.fail_list:
            raise UpstreamApiError(503, "Service Unavailable")
        return [dict(m) for m in self.store.get(str(owner_id), [])]

    def create(self, owner_type, owner_id, namespace, key, value, type_="single_line_text_field"):
        self.calls["create"] += 1
        if key in self.fail_keys:
            raise UpstreamApiError(500, "Internal Server Error")
        for m in self.store.get(str(owner_id), []):
            if m["namespace"] == namespace and m["key"] == key:
                raise UpstreamApiError(422, '{"errors":{"key":["must be unique"]}}')
        return dict(self._insert(str(owner_id), {
            "namespace": namespace, "key": key, "value": value, "type": type_,
        }))

    def update(self, metafield_id, value):
        self.calls["update"] += 1
        for mfs in self.store.values():
            for m in mfs:
                if m["id"] == metafield_id:
                    if m["key"] in self.fail_keys:
                        raise UpstreamApiError(500, "Internal Server Error")
                    m["value"] = value
                    return dict(m)
        raise UpstreamApiError(404, '{"errors":"Not Found"}')

    @property
    def writes(self):
        return self.calls["create"] + self.calls["update"]

    def value(self, owner_id, key, namespace="custom"):
        for m in self.store.get(str(owner_id), []):
            if m["namespace"] == namespace and m["key"] == key:
                return m["value"]
        return None


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify_all(self, events):
        self.events.extend(events)


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def settings(catalog):
    return Settings(
        domain="test-shop.myshopify.com",
        token="shpat_test",
        webhook_secret=WEBHOOK_SECRET,
        catalog=catalog,
    )


@pytest.fixture
def fake_client():
    return FakeMetafieldClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(settings, fake_client, notifier):
    return create_app(settings=settings, client=fake_client, notifier=notifier)


@pytest.fixture
def client(app):
    return app.test_client()
