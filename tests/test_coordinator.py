from unittest.mock import patch

import pytest
from django.db import DatabaseError

from ingest.coordinator import CoordinatorConfig, PipelineStageCoordinator
from ingest.engine import AssetCreationOption, NotificationEndpoint, NotificationJobState
from ingest.errors import (
    EngineSubmissionFailure,
    InputRegistrationFailure,
    InvalidEndpoint,
    SourceBlobMissing,
    SourceBlobUnavailable,
    StateStoreWriteFailure,
)
from ingest.models import ProcessingState
from ingest.state import ProcessingStateMessage

pytestmark = pytest.mark.django_db


def test_full_submission(coordinator, engine, blob, message):
    result = coordinator.handle(message, blob)

    assert len(engine.submitted) == 1
    job = engine.submitted[0]
    assert job.name == "MES encode from input container - ABR streaming"
    assert len(job.tasks) == 1
    task = job.tasks[0]
    assert task.priority == 100
    assert task.processor_name == "Media Encoder Standard"
    assert task.configuration == "Content Adaptive Multiple Bitrate MP4"
    assert task.input_asset_ids == [result.asset_id]

    assert [(o.name, o.options) for o in task.output_assets] == [("clip.mp4", AssetCreationOption.NONE)]

    assert len(task.notification_subscriptions) == 1
    sub = task.notification_subscriptions[0]
    assert sub.job_state == NotificationJobState.FINAL_STATES_ONLY
    assert sub.include_progress is False
    assert sub.endpoint_id == result.channel_id

    asset = engine.assets[result.asset_id]
    assert asset.name == "My Clip"
    assert asset.alternate_id == "abc123"

    assert not blob.exists()

    record = ProcessingState.objects.get(pk="abc123")
    assert record.blob_name == "clip.mp4"
    assert record.custom_properties == {"Video_Title": "My Clip"}
    assert record.job_id == result.job_id
    assert record.asset_id == result.asset_id
    assert ProcessingState.objects.count() == 1


def test_title_falls_back_to_blob_name(coordinator, engine, blob):
    message = ProcessingStateMessage(id="x1", blob_name="clip.mp4", custom_properties={"Video_Title": ""})

    result = coordinator.handle(message, blob)

    assert engine.assets[result.asset_id].name == "clip.mp4"


def test_alternate_id_is_tagged_by_separate_update(coordinator, engine, blob, message):
    coordinator.handle(message, blob)

    assert engine.calls.index("create_asset_from_blob") < engine.calls.index("update_asset_alternate_id")


def test_channel_reused_across_messages(coordinator, engine, make_blob):
    first = coordinator.handle(ProcessingStateMessage("a", "a.mp4"), make_blob("a.mp4"))
    second = coordinator.handle(ProcessingStateMessage("b", "b.mp4"), make_blob("b.mp4"))

    assert first.channel_id == second.channel_id
    assert len(engine.endpoints) == 1
    assert len(engine.submitted) == 2


def test_existing_channel_is_used(coordinator, engine, blob, message):
    engine.endpoints.append(NotificationEndpoint(id="ep-live", name="FunctionWebHook", address="https://x.example.com/"))

    result = coordinator.handle(message, blob)

    assert result.channel_id == "ep-live"
    assert "create_notification_endpoint" not in engine.calls


def test_malformed_webhook_url_aborts_before_anything(engine, blob, message):
    config = CoordinatorConfig(webhook_url="htp:/broken", signing_key="")
    coordinator = PipelineStageCoordinator(engine, config)

    with pytest.raises(InvalidEndpoint):
        coordinator.handle(message, blob)

    assert engine.assets == {}
    assert engine.submitted == []
    assert blob.exists()
    assert blob.delete_calls == 0
    assert not ProcessingState.objects.exists()


def test_engine_rejecting_endpoint_keeps_source(coordinator, engine, blob, message):
    engine.fail_on.add("create_notification_endpoint")

    with pytest.raises(InvalidEndpoint):
        coordinator.handle(message, blob)

    assert blob.exists()
    assert engine.submitted == []


def test_registration_failure_keeps_source(coordinator, engine, blob, message):
    engine.fail_on.add("create_asset_from_blob")

    with pytest.raises(InputRegistrationFailure) as exc:
        coordinator.handle(message, blob)

    assert exc.value.retryable
    assert exc.value.asset_id is None
    assert blob.exists()
    assert engine.submitted == []


def test_tagging_failure_keeps_source(coordinator, engine, blob, message):
    engine.fail_on.add("update_asset_alternate_id")

    with pytest.raises(InputRegistrationFailure) as exc:
        coordinator.handle(message, blob)

    assert exc.value.asset_id == "asset-1"
    assert blob.exists()
    assert blob.delete_calls == 0


def test_resume_after_tagging_failure_reuses_asset(coordinator, engine, blob, message):
    engine.fail_on.add("update_asset_alternate_id")
    with pytest.raises(InputRegistrationFailure) as exc:
        coordinator.handle(message, blob)
    engine.fail_on.clear()

    result = coordinator.handle(message, blob, resume_asset_id=exc.value.asset_id)

    assert list(engine.assets) == ["asset-1"]
    assert result.asset_id == "asset-1"
    assert engine.assets["asset-1"].alternate_id == "abc123"
    assert engine.calls.count("create_asset_from_blob") == 1
    assert not blob.exists()


def test_blob_store_failure_on_delete_reports_asset(coordinator, engine, blob, message):
    blob.delete_error = SourceBlobUnavailable("encoding-input/clip.mp4", "SlowDown")

    with pytest.raises(EngineSubmissionFailure) as exc:
        coordinator.handle(message, blob)

    assert exc.value.asset_id == "asset-1"
    assert exc.value.retryable
    assert engine.submitted == []

    blob.delete_error = None
    result = coordinator.handle(message, blob, resume_asset_id=exc.value.asset_id)

    assert result.asset_id == "asset-1"
    assert len(engine.assets) == 1
    assert not blob.exists()


def test_redelivery_after_crash_before_delete(coordinator, engine, blob, message):
    blob.fail_delete = True
    with pytest.raises(RuntimeError):
        coordinator.handle(message, blob)
    assert engine.submitted == []

    blob.fail_delete = False
    result = coordinator.handle(message, blob)

    assert not blob.exists()
    assert len(engine.submitted) == 1
    assert all(a.alternate_id == "abc123" for a in engine.assets.values())
    assert ProcessingState.objects.get(pk="abc123").job_id == result.job_id


def test_missing_source_without_resume(coordinator, engine, message, make_blob):
    with pytest.raises(SourceBlobMissing) as exc:
        coordinator.handle(message, make_blob("clip.mp4", exists=False))

    assert not exc.value.retryable
    assert engine.calls == []


def test_submission_failure_reports_asset(coordinator, engine, blob, message):
    engine.fail_on.add("submit_job")

    with pytest.raises(EngineSubmissionFailure) as exc:
        coordinator.handle(message, blob)

    assert exc.value.asset_id in engine.assets
    assert exc.value.retryable
    assert not ProcessingState.objects.exists()


def test_resume_with_registered_asset(coordinator, engine, blob, message, make_blob):
    engine.fail_on.add("submit_job")
    with pytest.raises(EngineSubmissionFailure) as exc:
        coordinator.handle(message, blob)
    asset_id = exc.value.asset_id
    engine.fail_on.clear()

    gone = make_blob("clip.mp4", exists=False)
    result = coordinator.handle(message, gone, resume_asset_id=asset_id)

    assert result.asset_id == asset_id
    assert len(engine.assets) == 1
    assert gone.delete_calls == 1
    assert engine.calls.count("update_asset_alternate_id") == 2
    assert engine.submitted[0].tasks[0].input_asset_ids == [asset_id]
    assert ProcessingState.objects.get(pk="abc123").asset_id == asset_id


def test_resume_with_unknown_asset(coordinator, blob, message):
    with pytest.raises(EngineSubmissionFailure) as exc:
        coordinator.handle(message, blob, resume_asset_id="asset-404")

    assert exc.value.asset_id == "asset-404"


def test_endpoint_listing_failure_is_transient(coordinator, engine, blob, message):
    engine.fail_on.add("list_notification_endpoints")

    with pytest.raises(EngineSubmissionFailure) as exc:
        coordinator.handle(message, blob)

    assert exc.value.asset_id is None
    assert blob.exists()


def test_state_write_failure(coordinator, engine, blob, message, caplog):
    with patch.object(coordinator.store, "upsert", side_effect=DatabaseError("disk full")):
        with pytest.raises(StateStoreWriteFailure) as exc:
            coordinator.handle(message, blob)

    assert exc.value.job_id == engine.submitted[0].id
    assert exc.value.correlation_id == "abc123"
    assert any(r.levelname == "CRITICAL" for r in caplog.records)


def test_persist_state_alone(coordinator, message):
    coordinator.persist_state(message, "asset-7", "job-7")

    record = ProcessingState.objects.get(pk="abc123")
    assert (record.asset_id, record.job_id) == ("asset-7", "job-7")


def test_config_from_settings(settings):
    settings.NOTIFICATION_WEBHOOK_URL = "https://hooks.example.com/done"
    settings.WEBHOOK_SIGNING_KEY = "a2V5"
    settings.ENCODE_TASK_PRIORITY = 100
    settings.NOTIFICATION_ENDPOINT_NAME = "FunctionWebHook"

    config = CoordinatorConfig.from_settings()

    assert config.webhook_url == "https://hooks.example.com/done"
    assert config.signing_key == "a2V5"
    assert config.priority == 100
    assert config.channel_name == "FunctionWebHook"
