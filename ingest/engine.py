"""Encoding engine client.

The engine owns assets (registered uploads), jobs and notification endpoints.
Jobs are assembled locally (job -> one task -> inputs, outputs, notification
subscriptions) and sent in a single submit call; everything else is a direct
API call.
"""

import base64
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx
from django.conf import settings

from .errors import EngineError

logger = logging.getLogger(__name__)


class NotificationJobState(str, enum.Enum):
    FINAL_STATES_ONLY = "FinalStatesOnly"


class AssetCreationOption(str, enum.Enum):
    NONE = "None"


@dataclass
class Asset:
    id: str
    name: str
    alternate_id: Optional[str] = None


@dataclass
class NotificationEndpoint:
    id: str
    name: str
    address: str
    endpoint_type: str = "WebHook"


@dataclass
class TaskNotificationSubscription:
    endpoint_id: str
    job_state: NotificationJobState
    include_progress: bool = False


@dataclass
class OutputAsset:
    name: str
    options: AssetCreationOption = AssetCreationOption.NONE


@dataclass
class Task:
    name: str
    processor_name: str
    configuration: str
    priority: int
    input_asset_ids: list = field(default_factory=list)
    output_assets: list = field(default_factory=list)
    notification_subscriptions: list = field(default_factory=list)


@dataclass
class Job:
    name: str
    tasks: list = field(default_factory=list)
    id: Optional[str] = None
    state: Optional[str] = None


class EncodingEngine(ABC):
    """Operations the submission stage needs from the encoding engine."""

    @abstractmethod
    def create_asset_from_blob(self, blob, title: str) -> Asset:
        pass

    @abstractmethod
    def update_asset_alternate_id(self, asset: Asset, alternate_id: str) -> Asset:
        pass

    @abstractmethod
    def get_asset(self, asset_id: str) -> Asset:
        pass

    @abstractmethod
    def list_notification_endpoints(self) -> list:
        pass

    @abstractmethod
    def create_notification_endpoint(self, name: str, address: str, credential: bytes) -> NotificationEndpoint:
        pass

    @abstractmethod
    def submit_job(self, job: Job) -> Job:
        pass

    def close(self):
        pass

    def create_job(self, name: str) -> Job:
        return Job(name=name)

    def add_task(
        self,
        job: Job,
        name: str,
        processor_name: str,
        configuration: str,
        priority: int,
        input_asset: Asset,
    ) -> Task:
        task = Task(
            name=name,
            processor_name=processor_name,
            configuration=configuration,
            priority=priority,
            input_asset_ids=[input_asset.id],
        )
        job.tasks.append(task)
        return task

    def add_task_notification_subscription(
        self,
        task: Task,
        endpoint: NotificationEndpoint,
        job_state: NotificationJobState = NotificationJobState.FINAL_STATES_ONLY,
        include_progress: bool = False,
    ) -> TaskNotificationSubscription:
        sub = TaskNotificationSubscription(
            endpoint_id=endpoint.id,
            job_state=job_state,
            include_progress=include_progress,
        )
        task.notification_subscriptions.append(sub)
        return sub

    def add_output_asset(
        self,
        task: Task,
        name: str,
        options: AssetCreationOption = AssetCreationOption.NONE,
    ) -> OutputAsset:
        out = OutputAsset(name=name, options=options)
        task.output_assets.append(out)
        return out


def _asset_from(data) -> Asset:
    try:
        return Asset(id=data["Id"], name=data.get("Name", ""), alternate_id=data.get("AlternateId"))
    except (KeyError, TypeError, AttributeError) as e:
        raise EngineError(f"Malformed asset in engine response: {data!r}") from e


def _endpoint_from(data) -> NotificationEndpoint:
    try:
        return NotificationEndpoint(
            id=data["Id"],
            name=data["Name"],
            address=data.get("EndPointAddress", ""),
            endpoint_type=data.get("EndPointType", "WebHook"),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise EngineError(f"Malformed notification endpoint in engine response: {data!r}") from e


def job_payload(job: Job) -> dict:
    """Wire representation of a locally assembled job."""
    return {
        "Name": job.name,
        "Tasks": [
            {
                "Name": t.name,
                "MediaProcessorName": t.processor_name,
                "Configuration": t.configuration,
                "Priority": t.priority,
                "InputAssets": [{"Id": a} for a in t.input_asset_ids],
                "OutputAssets": [
                    {"Name": o.name, "Options": o.options.value} for o in t.output_assets
                ],
                "TaskNotificationSubscriptions": [
                    {
                        "NotificationEndPointId": s.endpoint_id,
                        "NotificationJobState": s.job_state.value,
                        "IncludeTaskProgress": s.include_progress,
                    }
                    for s in t.notification_subscriptions
                ],
            }
            for t in job.tasks
        ],
    }


class HttpEncodingEngine(EncodingEngine):
    """JSON-over-HTTP client for the encoding engine's REST API."""

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 30.0, client: httpx.Client | None = None):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, **kwargs):
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise EngineError(f"{method} {path} failed: {e}") from e
        if resp.is_error:
            raise EngineError(
                f"{method} {path} returned {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise EngineError(
                f"{method} {path} returned a non-JSON body: {resp.text[:200]}",
                status_code=resp.status_code,
            ) from e

    def create_asset_from_blob(self, blob, title: str) -> Asset:
        data = self._request("POST", "Assets", json={"Name": title, "SourceUrl": blob.read_url()})
        asset = _asset_from(data)
        logger.info("Registered asset %s (%s) from %s", asset.id, title, blob.name)
        return asset

    def update_asset_alternate_id(self, asset: Asset, alternate_id: str) -> Asset:
        self._request("PATCH", f"Assets/{asset.id}", json={"AlternateId": alternate_id})
        asset.alternate_id = alternate_id
        return asset

    def get_asset(self, asset_id: str) -> Asset:
        return _asset_from(self._request("GET", f"Assets/{asset_id}"))

    def list_notification_endpoints(self) -> list:
        data = self._request("GET", "NotificationEndPoints") or []
        if isinstance(data, dict):
            data = data.get("value", [])
        return [_endpoint_from(d) for d in data]

    def create_notification_endpoint(self, name: str, address: str, credential: bytes) -> NotificationEndpoint:
        data = self._request(
            "POST",
            "NotificationEndPoints",
            json={
                "Name": name,
                "EndPointType": "WebHook",
                "EndPointAddress": address,
                "CredentialKey": base64.b64encode(credential).decode("ascii"),
            },
        )
        return _endpoint_from(data)

    def submit_job(self, job: Job) -> Job:
        data = self._request("POST", "Jobs", json=job_payload(job))
        if not data or "Id" not in data:
            raise EngineError("POST Jobs accepted the job but returned no job id")
        job.id = data["Id"]
        job.state = data.get("State")
        return job


def build_engine() -> EncodingEngine:
    return HttpEncodingEngine(
        settings.ENCODING_ENGINE_URL,
        token=settings.ENCODING_ENGINE_TOKEN,
        timeout=settings.ENCODING_ENGINE_TIMEOUT,
    )
