from rest_framework import serializers

from .models import ProcessingState
from .state import ProcessingStateMessage
from .utils import new_correlation_id


class ProcessingStateMessageSerializer(serializers.Serializer):
    """Queue payload: {"id", "blobName", "customProperties"}."""
    id = serializers.CharField(max_length=255, required=False, allow_blank=True)
    blobName = serializers.CharField(max_length=1024, source="blob_name")
    customProperties = serializers.DictField(
        child=serializers.CharField(allow_blank=True),
        source="custom_properties",
        required=False,
        default=dict,
    )

    def validate_blobName(self, value):
        if ".." in value.split("/"):
            raise serializers.ValidationError("blobName must not walk out of the input prefix.")
        return value

    def validate(self, attrs):
        # No id from upstream: mint one so the asset and the state record can still be joined.
        if not attrs.get("id"):
            attrs["id"] = new_correlation_id()
        return attrs

    def to_message(self) -> ProcessingStateMessage:
        data = self.validated_data
        return ProcessingStateMessage(
            id=data["id"],
            blob_name=data["blob_name"],
            custom_properties=dict(data.get("custom_properties") or {}),
        )


class ProcessingStateSerializer(serializers.ModelSerializer):
    blobName = serializers.CharField(source="blob_name")
    customProperties = serializers.JSONField(source="custom_properties")
    assetId = serializers.CharField(source="asset_id")
    jobId = serializers.CharField(source="job_id")
    createdAt = serializers.DateTimeField(source="created_at")
    updatedAt = serializers.DateTimeField(source="updated_at")

    class Meta:
        model = ProcessingState
        fields = [
            "id",
            "blobName",
            "customProperties",
            "assetId",
            "jobId",
            "createdAt",
            "updatedAt",
        ]
