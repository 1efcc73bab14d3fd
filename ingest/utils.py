import base64
import binascii
from uuid import uuid4

from .errors import InvalidEndpoint

TITLE_PROPERTY = "Video_Title"
MIN_SIGNING_KEY_BYTES = 32


def resolve_title(custom_properties: dict | None, blob_name: str) -> str:
    """Use the Video_Title property when it is set and non-empty, else the blob's name."""
    title = (custom_properties or {}).get(TITLE_PROPERTY)
    if isinstance(title, str) and title.strip():
        return title
    return blob_name


def new_correlation_id() -> str:
    return uuid4().hex


def decode_signing_key(value: str | None, endpoint: str | None = None) -> bytes:
    """
    Decode the base64 webhook signing key. The engine signs callbacks with
    HMAC-SHA256 over these bytes, so anything shorter than 32 bytes is refused.
    """
    if not value or not value.strip():
        raise InvalidEndpoint(endpoint, "No webhook signing key is configured.")
    try:
        key = base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidEndpoint(endpoint, "The webhook signing key is not valid base64.")
    if len(key) < MIN_SIGNING_KEY_BYTES:
        raise InvalidEndpoint(
            endpoint,
            f"The webhook signing key must decode to at least {MIN_SIGNING_KEY_BYTES} bytes.",
        )
    return key
