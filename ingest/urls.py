from django.urls import path
from .views import EnqueueSubmissionView, ProcessingStateDetailView

urlpatterns = [
    path("submissions/", EnqueueSubmissionView.as_view(), name="enqueue_submission"),
    path("states/<str:correlation_id>/", ProcessingStateDetailView.as_view(), name="processing_state_detail"),
]
