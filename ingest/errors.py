from django.core.exceptions import ImproperlyConfigured


class EngineError(Exception):
    """Raised by encoding engine clients for any failed call."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SubmissionError(Exception):
    """Base for failures of the submission stage. `retryable` drives task retry policy."""
    retryable = False


class InvalidEndpoint(SubmissionError, ImproperlyConfigured):
    """The webhook endpoint (or its signing key) cannot be used to create the notification channel."""

    def __init__(self, endpoint: str | None, reason: str = ""):
        self.endpoint = endpoint
        self.reason = reason
        msg = f"The endpoint address specified - '{endpoint}' is not valid."
        if reason:
            msg = f"{msg} {reason}"
        super().__init__(msg)


class ChannelProvisioningConflict(SubmissionError):
    """Another worker is creating the same notification channel right now."""
    retryable = True

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Notification endpoint '{name}' is being provisioned by another worker")


class SourceBlobMissing(SubmissionError):
    def __init__(self, blob_name: str):
        self.blob_name = blob_name
        super().__init__(f"Source blob '{blob_name}' does not exist and there is no asset to resume")


class SourceBlobUnavailable(SubmissionError):
    """The blob store failed (throttling, network, credentials); the upload may still be there."""
    retryable = True

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Source blob '{key}' unavailable: {reason}")


class EngineSubmissionFailure(SubmissionError):
    """
    The job could not be built or submitted. `asset_id` is set when an asset
    was already registered (the source blob may already be gone), so a retry can
    reuse it instead of re-reading the upload.
    """
    retryable = True

    def __init__(self, message: str, asset_id: str | None = None):
        self.asset_id = asset_id
        super().__init__(message)


class InputRegistrationFailure(EngineSubmissionFailure):
    """Asset creation or alternate-id tagging failed; the source blob is untouched."""


class StateStoreWriteFailure(SubmissionError):
    """The job is submitted but its correlation record was not written."""
    retryable = True

    def __init__(self, correlation_id: str, job_id: str | None = None, asset_id: str | None = None):
        self.correlation_id = correlation_id
        self.job_id = job_id
        self.asset_id = asset_id
        super().__init__(
            f"Could not store processing state '{correlation_id}' for submitted job '{job_id}'"
        )
