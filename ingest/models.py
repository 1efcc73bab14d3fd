from django.db import models


class ProcessingState(models.Model):
    """
    Correlation record for one uploaded video. Keyed by the correlation id
    the encoding engine also carries as the asset's alternate id, so the
    webhook stage can find this row when the job completes.
    """
    id = models.CharField(primary_key=True, max_length=255)
    blob_name = models.CharField(max_length=1024)
    custom_properties = models.JSONField(default=dict, blank=True)  # {str: str}
    asset_id = models.CharField(max_length=255, blank=True, default="")
    job_id = models.CharField(max_length=255, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.id} ({self.blob_name})"
