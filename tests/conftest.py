import base64

import pytest
from django.core.cache import cache

from ingest.coordinator import CoordinatorConfig, PipelineStageCoordinator
from ingest.engine import Asset, EncodingEngine, NotificationEndpoint
from ingest.errors import EngineError
from ingest.state import ProcessingStateMessage

SIGNING_KEY = base64.b64encode(bytes(range(32))).decode("ascii")
WEBHOOK_URL = "https://hooks.example.com/api/encode-complete?code=abc"


class FakeEngine(EncodingEngine):
    """In-memory encoding engine. Put operation names in `fail_on` to make them raise."""

    def __init__(self):
        self.assets = {}
        self.endpoints = []
        self.credentials = {}
        self.submitted = []
        self.fail_on = set()
        self.calls = []

    def _call(self, op):
        self.calls.append(op)
        if op in self.fail_on:
            raise EngineError(f"{op} failed")

    def create_asset_from_blob(self, blob, title):
        self._call("create_asset_from_blob")
        asset = Asset(id=f"asset-{len(self.assets) + 1}", name=title)
        self.assets[asset.id] = asset
        return asset

    def update_asset_alternate_id(self, asset, alternate_id):
        self._call("update_asset_alternate_id")
        asset.alternate_id = alternate_id
        return asset

    def get_asset(self, asset_id):
        self._call("get_asset")
        if asset_id not in self.assets:
            raise EngineError(f"asset {asset_id} not found", status_code=404)
        return self.assets[asset_id]

    def list_notification_endpoints(self):
        self._call("list_notification_endpoints")
        return list(self.endpoints)

    def create_notification_endpoint(self, name, address, credential):
        self._call("create_notification_endpoint")
        endpoint = NotificationEndpoint(id=f"ep-{len(self.endpoints) + 1}", name=name, address=address)
        self.endpoints.append(endpoint)
        self.credentials[endpoint.id] = credential
        return endpoint

    def submit_job(self, job):
        self._call("submit_job")
        job.id = f"job-{len(self.submitted) + 1}"
        job.state = "Queued"
        self.submitted.append(job)
        return job


class FakeBlob:
    def __init__(self, name, exists=True):
        self.name = name
        self.present = exists
        self.fail_delete = False
        self.delete_error = None
        self.delete_calls = 0

    def exists(self):
        return self.present

    def read_url(self):
        return f"https://storage.example.com/encoding-input/{self.name}?sig=x"

    def delete_if_exists(self):
        self.delete_calls += 1
        if self.fail_delete:
            raise RuntimeError("worker lost")
        if self.delete_error is not None:
            raise self.delete_error
        self.present = False


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def blob():
    return FakeBlob("clip.mp4")


@pytest.fixture
def config():
    return CoordinatorConfig(webhook_url=WEBHOOK_URL, signing_key=SIGNING_KEY)


@pytest.fixture
def message():
    return ProcessingStateMessage(
        id="abc123",
        blob_name="clip.mp4",
        custom_properties={"Video_Title": "My Clip"},
    )


@pytest.fixture
def coordinator(engine, config):
    return PipelineStageCoordinator(engine, config)


@pytest.fixture
def make_blob():
    return FakeBlob
