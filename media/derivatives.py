"""
Shared machinery for the derivative engines.

An engine renders a record's fixed rendition set, uploads every rendition,
and then commits the whole set together with the `completed` status in one
transaction. Any exception on the way is converted into `status=failed`:
nothing past `DerivativeEngine.run` ever sees a processing error.
"""
import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from typing import Callable

from django.db import transaction

from .exceptions import InvalidTransition, ProcessingError
from .models import MediaRecord, Rendition
from .search_index import dispatch_indexed

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 4000


@dataclass
class RenditionResult:
    name: str
    purpose: str
    storage_key: str
    url: str
    content_type: str
    width: int
    height: int
    byte_size: int
    position_seconds: float | None = None
    ordinal: int | None = None
    is_primary: bool = False


@dataclass
class DerivativeSet:
    renditions: list[RenditionResult]
    record_fields: dict = field(default_factory=dict)


def run_all_or_nothing(branches: dict[str, Callable], max_workers: int = 5) -> dict:
    """
    Run every callable concurrently and return {name: result}.

    On the first failure, branches that have not started are cancelled and
    the triggering exception is re-raised once the running ones have
    finished. Partial results are never returned.
    """
    if not branches:
        return {}

    pool = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(branches))), thread_name_prefix="rendition")
    try:
        futures = {pool.submit(fn): name for name, fn in branches.items()}
        done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
        for f in not_done:
            f.cancel()
    finally:
        pool.shutdown(wait=True, cancel_futures=True)

    # the first failure in submission order is the one reported
    for f, name in futures.items():
        if f.done() and not f.cancelled() and f.exception() is not None:
            logger.debug("Branch %s failed", name)
            raise f.exception()
    return {name: f.result() for f, name in futures.items()}


class UploadTracker:
    """Keys written during one engine invocation, for cleanup on failure."""

    def __init__(self):
        self._lock = threading.Lock()
        self._keys = []

    def add(self, key):
        with self._lock:
            self._keys.append(key)

    @property
    def keys(self) -> list[str]:
        with self._lock:
            return list(self._keys)


class DerivativeEngine:
    kind = None

    def __init__(self, storage, config):
        self.storage = storage
        self.config = config

    def render(self, record: MediaRecord, uploads: UploadTracker) -> DerivativeSet:
        raise NotImplementedError

    def upload(self, uploads: UploadTracker, key: str, data: bytes, content_type: str, metadata: dict) -> str:
        """Put one rendition and remember the key. Returns the object URL."""
        result = self.storage.put(key, data, content_type, metadata)
        uploads.add(key)
        return result.get("url") or self.storage.object_url(key)

    def run(self, record: MediaRecord) -> MediaRecord:
        uploads = UploadTracker()
        try:
            if record.kind != self.kind:
                raise ProcessingError(f"{self.__class__.__name__} cannot process {record.kind} media")
            result = self.render(record, uploads)
            self._commit(record, result)
        except Exception as e:
            logger.exception("Processing %s media %s failed", record.kind, record.id)
            self._fail(record, e)
            if self._completed_elsewhere(record):
                # the keys are shared with the attempt that won
                logger.warning("Media %s was completed by another attempt; keeping its renditions", record.id)
            else:
                self._discard(uploads.keys)
            return record

        logger.info("Media %s completed with %d renditions", record.id, len(result.renditions))
        dispatch_indexed(record)
        return record

    def _commit(self, record: MediaRecord, result: DerivativeSet):
        with transaction.atomic():
            try:
                locked = MediaRecord.objects.select_for_update().get(pk=record.pk)
            except MediaRecord.DoesNotExist:
                raise ProcessingError(f"Media {record.id} was deleted during processing")
            if locked.status != MediaRecord.Status.PROCESSING:
                raise ProcessingError(f"Media {record.id} is {locked.status}, expected processing")
            locked.transition(MediaRecord.Status.COMPLETED, error_reason="", **result.record_fields)
            Rendition.objects.bulk_create(
                [Rendition(record=locked, **asdict(r)) for r in result.renditions]
            )
        record.refresh_from_db()

    def _completed_elsewhere(self, record: MediaRecord) -> bool:
        return MediaRecord.objects.filter(pk=record.pk, status=MediaRecord.Status.COMPLETED).exists()

    def _discard(self, keys):
        for key in keys:
            try:
                self.storage.delete(key)
            except Exception:
                logger.warning("Could not remove orphaned rendition %s", key, exc_info=True)

    def _fail(self, record: MediaRecord, exc: Exception):
        reason = (str(exc) or exc.__class__.__name__)[:MAX_ERROR_LENGTH]
        try:
            if not record.transition(MediaRecord.Status.FAILED, error_reason=reason):
                logger.warning("Media %s changed status before it could be marked failed", record.id)
        except InvalidTransition as e:
            logger.warning("Media %s not marked failed: %s", record.id, e)
