from dataclasses import asdict

from celery import shared_task
from celery.utils.log import get_task_logger
from django.conf import settings

from .coordinator import CoordinatorConfig, PipelineStageCoordinator
from .engine import build_engine
from .errors import EngineSubmissionFailure, StateStoreWriteFailure, SubmissionError
from .s3 import SourceBlob
from .serializers import ProcessingStateMessageSerializer

logger = get_task_logger(__name__)


def _retry_countdown(retries: int) -> int:
    """Exponential backoff: base, 2*base, 4*base ... capped."""
    return min(settings.SUBMISSION_RETRY_BACKOFF * (2 ** retries), settings.SUBMISSION_RETRY_BACKOFF_MAX)


def _retry_kwargs(payload: dict, exc: SubmissionError, resume_asset_id, submitted_job_id) -> dict:
    """Carry forward whatever the failed attempt already achieved on the engine."""
    kwargs = {"payload": payload, "resume_asset_id": resume_asset_id, "submitted_job_id": submitted_job_id}
    if isinstance(exc, StateStoreWriteFailure):
        kwargs["resume_asset_id"] = exc.asset_id
        kwargs["submitted_job_id"] = exc.job_id
    elif isinstance(exc, EngineSubmissionFailure) and exc.asset_id:
        kwargs["resume_asset_id"] = exc.asset_id
    return kwargs


@shared_task(bind=True)
def submit_encode_job(self, payload: dict, resume_asset_id: str | None = None, submitted_job_id: str | None = None):
    """
    Queue consumer for the submission stage. `payload` is one ProcessingState
    message; the other arguments are only set on retries.
    """
    ser = ProcessingStateMessageSerializer(data=payload)
    ser.is_valid(raise_exception=True)
    message = ser.to_message()
    # Pin a generated id so every retry correlates to the same record.
    payload = {**payload, "id": message.id}

    engine = build_engine()
    coordinator = PipelineStageCoordinator(engine, CoordinatorConfig.from_settings())
    try:
        if submitted_job_id:
            coordinator.persist_state(message, resume_asset_id or "", submitted_job_id)
            logger.info("[%s] stored state for previously submitted job %s", message.id, submitted_job_id)
            return {
                "correlation_id": message.id,
                "asset_id": resume_asset_id or "",
                "job_id": submitted_job_id,
                "channel_id": None,
            }

        result = coordinator.handle(message, SourceBlob(message.blob_name), resume_asset_id=resume_asset_id)
        return asdict(result)

    except SubmissionError as exc:
        if not exc.retryable:
            logger.error("[%s] not retrying %s: %s", message.id, type(exc).__name__, exc)
            raise
        logger.warning(
            "[%s] %s (attempt %d/%d): %s",
            message.id, type(exc).__name__, self.request.retries + 1, settings.SUBMISSION_MAX_RETRIES + 1, exc,
        )
        raise self.retry(
            exc=exc,
            kwargs=_retry_kwargs(payload, exc, resume_asset_id, submitted_job_id),
            countdown=_retry_countdown(self.request.retries),
            max_retries=settings.SUBMISSION_MAX_RETRIES,
        )
    finally:
        engine.close()
