from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .serializers import ProcessingStateMessageSerializer, ProcessingStateSerializer
from .state import DjangoStateStore
from .tasks import submit_encode_job


class EnqueueSubmissionView(views.APIView):
    """
    Accepts a ProcessingState message for an object already uploaded under
    ENCODE_INPUT_PREFIX and queues it for the submission stage.
    Returns the correlation id (generated when the caller sent none).
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = ProcessingStateMessageSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        message = ser.to_message()

        submit_encode_job.delay(
            {"id": message.id, "blobName": message.blob_name, "customProperties": message.custom_properties}
        )
        return Response({"id": message.id}, status=status.HTTP_202_ACCEPTED)


class ProcessingStateDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    store_class = DjangoStateStore

    def get(self, request, correlation_id):
        state = self.store_class().get(correlation_id)
        if state is None:
            return Response({"detail": "Not found"}, status=404)
        return Response(ProcessingStateSerializer(state).data)
