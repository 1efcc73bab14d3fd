from dataclasses import dataclass, field

from django.db import transaction

from .models import ProcessingState


@dataclass(frozen=True)
class ProcessingStateMessage:
    """One queue message: the correlation id, the uploaded blob and its metadata."""
    id: str
    blob_name: str
    custom_properties: dict = field(default_factory=dict)


class DjangoStateStore:
    """Correlation state store on the Django ORM. Upserts are all-or-nothing."""

    def upsert(self, message: ProcessingStateMessage, *, asset_id: str = "", job_id: str = "") -> ProcessingState:
        with transaction.atomic():
            record, _ = ProcessingState.objects.update_or_create(
                id=message.id,
                defaults={
                    "blob_name": message.blob_name,
                    "custom_properties": dict(message.custom_properties),
                    "asset_id": asset_id or "",
                    "job_id": job_id or "",
                },
            )
        return record

    def get(self, correlation_id: str) -> ProcessingState | None:
        return ProcessingState.objects.filter(pk=correlation_id).first()
