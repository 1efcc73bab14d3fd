import logging
from contextlib import contextmanager
from uuid import uuid4

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.validators import URLValidator

from .engine import EncodingEngine, NotificationEndpoint
from .errors import ChannelProvisioningConflict, EngineError, InvalidEndpoint
from .utils import decode_signing_key

logger = logging.getLogger(__name__)

_validate_url = URLValidator(schemes=["http", "https"])


@contextmanager
def provisioning_lock(name: str, timeout: int):
    """
    Best-effort named lock on the shared cache. Yields True when this caller
    holds it. cache.add is atomic on Redis/memcached; the timeout bounds how
    long a crashed holder can block others.
    """
    key = f"provisioning-lock:{name}"
    token = uuid4().hex
    acquired = cache.add(key, token, timeout)
    try:
        yield acquired
    finally:
        if acquired and cache.get(key) == token:
            cache.delete(key)


def ensure_by_name(name, lookup, create, *, lock_timeout: int = 30, on_create_error=None):
    """
    Return the resource called `name`, creating it at most once across workers.

    lookup(name) returns the existing resource or None; create() makes it.
    If creation fails and a re-lookup now finds the resource, someone else
    won the race and their resource is returned. Otherwise on_create_error(exc)
    decides what to raise (default: re-raise).
    """
    found = lookup(name)
    if found is not None:
        return found

    with provisioning_lock(name, lock_timeout) as acquired:
        if not acquired:
            found = lookup(name)
            if found is not None:
                return found
            raise ChannelProvisioningConflict(name)

        found = lookup(name)
        if found is not None:
            return found
        try:
            return create()
        except Exception as exc:
            found = lookup(name)
            if found is not None:
                logger.info("'%s' appeared while we were creating it; using the existing one", name)
                return found
            err = exc if on_create_error is None else on_create_error(exc)
            if err is exc:
                raise
            raise err from exc


class NotificationChannelRegistry:
    """Get-or-create of named webhook notification endpoints on the encoding engine."""

    def __init__(self, engine: EncodingEngine, lock_timeout: int = 30):
        self.engine = engine
        self.lock_timeout = lock_timeout

    def find(self, name: str) -> NotificationEndpoint | None:
        return next((e for e in self.engine.list_notification_endpoints() if e.name == name), None)

    def get_or_create(self, name: str, endpoint_url: str, secret: str) -> NotificationEndpoint:
        """
        An existing endpoint is returned unchanged, even if `endpoint_url`
        differs or is invalid. Creation problems surface as InvalidEndpoint.
        """

        def create():
            try:
                _validate_url(endpoint_url or "")
            except ValidationError:
                raise InvalidEndpoint(endpoint_url)
            key = decode_signing_key(secret, endpoint_url)
            endpoint = self.engine.create_notification_endpoint(name, endpoint_url, key)
            logger.info("Created notification endpoint '%s' -> %s", name, endpoint_url)
            return endpoint

        def invalid(exc):
            if isinstance(exc, InvalidEndpoint):
                return exc
            return InvalidEndpoint(endpoint_url, str(exc) if isinstance(exc, EngineError) else "")

        return ensure_by_name(
            name,
            self.find,
            create,
            lock_timeout=self.lock_timeout,
            on_create_error=invalid,
        )
