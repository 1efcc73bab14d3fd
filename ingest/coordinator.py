"""Submission stage: hand one uploaded video to the encoding engine.

The stage ends once the engine has accepted the job. Completion is reported
to the webhook stage, which finds the stored ProcessingState by the
correlation id carried on the asset as its alternate id.
"""

import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import DatabaseError

from .channels import NotificationChannelRegistry
from .engine import AssetCreationOption, EncodingEngine, NotificationJobState
from .errors import (
    EngineError,
    EngineSubmissionFailure,
    InputRegistrationFailure,
    SourceBlobMissing,
    SourceBlobUnavailable,
    StateStoreWriteFailure,
)
from .state import DjangoStateStore, ProcessingStateMessage
from .utils import resolve_title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoordinatorConfig:
    webhook_url: str
    signing_key: str  # base64
    channel_name: str = "FunctionWebHook"
    job_name: str = "MES encode from input container - ABR streaming"
    task_name: str = "encoding task"
    processor_name: str = "Media Encoder Standard"
    preset: str = "Content Adaptive Multiple Bitrate MP4"
    priority: int = 100
    channel_lock_timeout: int = 30

    @classmethod
    def from_settings(cls) -> "CoordinatorConfig":
        return cls(
            webhook_url=settings.NOTIFICATION_WEBHOOK_URL,
            signing_key=settings.WEBHOOK_SIGNING_KEY,
            channel_name=settings.NOTIFICATION_ENDPOINT_NAME,
            job_name=settings.ENCODE_JOB_NAME,
            task_name=settings.ENCODE_TASK_NAME,
            processor_name=settings.ENCODE_PROCESSOR_NAME,
            preset=settings.ENCODE_PRESET,
            priority=settings.ENCODE_TASK_PRIORITY,
            channel_lock_timeout=settings.CHANNEL_LOCK_TIMEOUT,
        )


@dataclass(frozen=True)
class SubmissionResult:
    correlation_id: str
    asset_id: str
    job_id: str
    channel_id: str


class PipelineStageCoordinator:
    def __init__(self, engine: EncodingEngine, config: CoordinatorConfig, store=None, registry=None):
        self.engine = engine
        self.config = config
        self.store = store or DjangoStateStore()
        self.registry = registry or NotificationChannelRegistry(engine, lock_timeout=config.channel_lock_timeout)

    def handle(self, message: ProcessingStateMessage, blob, resume_asset_id: str | None = None) -> SubmissionResult:
        """
        Submit one encode job for `message`.

        With `resume_asset_id` the asset registered by an earlier attempt is
        reused (and re-tagged) instead of registering the source blob again.
        """
        if resume_asset_id is None and not blob.exists():
            raise SourceBlobMissing(message.blob_name)

        # Before anything is created or deleted, so a bad webhook config leaves the upload in place.
        try:
            channel = self.registry.get_or_create(
                self.config.channel_name, self.config.webhook_url, self.config.signing_key
            )
        except EngineError as e:
            raise EngineSubmissionFailure(f"Could not look up notification endpoints: {e}") from e

        if resume_asset_id is None:
            asset = self._register_input(message, blob)
        else:
            try:
                asset = self.engine.get_asset(resume_asset_id)
            except EngineError as e:
                raise EngineSubmissionFailure(str(e), asset_id=resume_asset_id) from e
            logger.info("[%s] resuming with asset %s", message.id, asset.id)
            self._tag(message, asset)

        try:
            blob.delete_if_exists()
        except SourceBlobUnavailable as e:
            raise EngineSubmissionFailure(
                f"Could not delete source {message.blob_name}: {e}", asset_id=asset.id
            ) from e

        try:
            job = self.engine.create_job(self.config.job_name)
            task = self.engine.add_task(
                job,
                self.config.task_name,
                self.config.processor_name,
                self.config.preset,
                self.config.priority,
                asset,
            )
            self.engine.add_task_notification_subscription(
                task, channel, NotificationJobState.FINAL_STATES_ONLY, include_progress=False
            )
            self.engine.add_output_asset(task, message.blob_name, AssetCreationOption.NONE)
            self.engine.submit_job(job)
        except EngineError as e:
            logger.error("[%s] job submission failed; asset %s has no job yet: %s", message.id, asset.id, e)
            raise EngineSubmissionFailure(str(e), asset_id=asset.id) from e

        self.persist_state(message, asset.id, job.id)
        logger.info("[%s] encoding job %s submitted for %s", message.id, job.id, message.blob_name)
        return SubmissionResult(
            correlation_id=message.id,
            asset_id=asset.id,
            job_id=job.id,
            channel_id=channel.id,
        )

    def persist_state(self, message: ProcessingStateMessage, asset_id: str, job_id: str):
        try:
            return self.store.upsert(message, asset_id=asset_id, job_id=job_id)
        except DatabaseError as e:
            # The job is already running; without this record its callback cannot be correlated.
            logger.critical(
                "[%s] STATE NOT STORED for submitted job %s (asset %s): %s",
                message.id, job_id, asset_id, e,
            )
            raise StateStoreWriteFailure(message.id, job_id=job_id, asset_id=asset_id) from e

    def _register_input(self, message: ProcessingStateMessage, blob):
        title = resolve_title(message.custom_properties, message.blob_name)
        try:
            asset = self.engine.create_asset_from_blob(blob, title)
        except EngineError as e:
            raise InputRegistrationFailure(f"Could not register {message.blob_name}: {e}") from e
        self._tag(message, asset)
        return asset

    def _tag(self, message: ProcessingStateMessage, asset):
        try:
            # Same id on every attempt, so repeating this is harmless.
            self.engine.update_asset_alternate_id(asset, message.id)
        except EngineError as e:
            raise InputRegistrationFailure(
                f"Could not tag asset {asset.id} with {message.id}: {e}", asset_id=asset.id
            ) from e
