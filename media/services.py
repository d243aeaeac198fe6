"""
Upload intake, confirmation and deletion.

These run synchronously inside the request. Derivative generation is handed
to the `process_media` Celery task by `confirm_upload`.
"""
import logging
from dataclasses import dataclass, field

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from .exceptions import MediaNotFound, MissingOriginal, StorageError, UnsupportedMediaType, VerificationFailed
from .models import MediaRecord
from .s3 import generate_key, get_storage
from .search_index import dispatch_indexed, dispatch_removed
from .utils import KIND_PREFIXES, extension_for, guess_kind, normalize_content_type

logger = logging.getLogger(__name__)

VERIFICATION_FAILED = "verification failed"


@dataclass
class UploadTicket:
    media_id: str
    key: str
    url: str
    headers: dict
    expires_in: int


@dataclass
class ConfirmResult:
    media_id: str
    status: str
    dispatched: bool


@dataclass
class KeyDeletion:
    key: str
    deleted: bool
    error: str = ""


@dataclass
class DeletionReport:
    media_id: str
    results: list[KeyDeletion] = field(default_factory=list)

    @property
    def failed_keys(self) -> list[str]:
        return [r.key for r in self.results if not r.deleted]


def get_owned_record(media_id, owner_id) -> MediaRecord:
    try:
        return MediaRecord.objects.get(pk=media_id, owner_id=owner_id)
    except (MediaRecord.DoesNotExist, ValidationError, ValueError):
        raise MediaNotFound(media_id)


def create_upload(owner_id, filename, content_type, *, conversation_id="", message_id="", storage=None) -> UploadTicket:
    """
    Allocate a storage key, presign a direct upload for it and create the
    pending record. Nothing is written to the object store.
    """
    kind = guess_kind(content_type)
    if kind is None:
        raise UnsupportedMediaType(content_type)

    storage = storage or get_storage()
    content_type = normalize_content_type(content_type)
    key = generate_key(owner_id, extension_for(content_type), KIND_PREFIXES[kind])
    signed = storage.presigned_put(key, content_type=content_type)

    record = MediaRecord.objects.create(
        owner_id=owner_id,
        kind=kind,
        declared_content_type=content_type,
        original_filename=filename,
        original_key=key,
        conversation_id=conversation_id or "",
        message_id=message_id or "",
    )
    logger.info("Created %s media %s for owner %s at %s", kind, record.id, owner_id, key)
    return UploadTicket(
        media_id=str(record.id),
        key=key,
        url=signed["url"],
        headers=signed.get("headers", {}),
        expires_in=signed.get("expires_in", 0),
    )


def enqueue_processing(record: MediaRecord):
    """Queue derivative generation once the surrounding transaction commits."""
    from .tasks import process_media

    def _send():
        result = process_media.delay(str(record.id))
        task_id = getattr(result, "id", "") or ""
        MediaRecord.objects.filter(pk=record.pk).update(processing_task_id=task_id)

    transaction.on_commit(_send)


def confirm_upload(media_id, owner_id, *, storage=None) -> ConfirmResult:
    """
    Verify the uploaded object exists, move the record to processing and
    queue derivative generation. Returns without waiting for it.

    Only a pending record is acted on; confirming any other record is a
    no-op that reports its current status.
    """
    record = get_owned_record(media_id, owner_id)
    if not record.original_key:
        raise MissingOriginal(media_id)

    if record.status != MediaRecord.Status.PENDING:
        logger.info("Media %s already %s; confirm is a no-op", record.id, record.status)
        return ConfirmResult(str(record.id), record.status, dispatched=False)

    storage = storage or get_storage()
    try:
        present = storage.head(record.original_key) is not None
    except StorageError as e:
        logger.warning("Verifying %s for media %s failed: %s", record.original_key, record.id, e)
        present = False

    if not present:
        if not record.transition(MediaRecord.Status.FAILED, error_reason=VERIFICATION_FAILED):
            # a concurrent confirm verified the object and moved the record on
            record.refresh_from_db(fields=["status"])
            logger.info("Media %s confirmed elsewhere; now %s", record.id, record.status)
            return ConfirmResult(str(record.id), record.status, dispatched=False)
        raise VerificationFailed(f"Uploaded object for media {record.id} could not be verified")

    with transaction.atomic():
        moved = record.transition(
            MediaRecord.Status.PROCESSING,
            processing_started_at=timezone.now(),
        )
        if not moved:
            record.refresh_from_db(fields=["status"])
            return ConfirmResult(str(record.id), record.status, dispatched=False)
        enqueue_processing(record)

    logger.info("Media %s confirmed; processing queued", record.id)
    return ConfirmResult(str(record.id), record.status, dispatched=True)


def update_media(media_id, owner_id, *, is_public=None, people_tagged=None) -> MediaRecord:
    record = get_owned_record(media_id, owner_id)
    fields = []
    if is_public is not None:
        record.is_public = is_public
        fields.append("is_public")
    if people_tagged is not None:
        record.people_tagged = list(people_tagged)
        fields.append("people_tagged")
    if fields:
        record.save(update_fields=fields + ["updated_at"])
        if record.status == MediaRecord.Status.COMPLETED:
            dispatch_indexed(record)
    return record


def delete_media(media_id, owner_id, *, storage=None) -> DeletionReport:
    """
    Best-effort removal of every object the record owns, then the record.

    Object deletions are independent: a failing key is logged and reported
    but neither stops the others nor keeps the record alive.
    """
    record = get_owned_record(media_id, owner_id)
    storage = storage or get_storage()
    report = DeletionReport(media_id=str(record.id))

    for key in record.storage_keys():
        try:
            storage.delete(key)
        except Exception as e:
            logger.warning("Could not delete %s for media %s: %s", key, record.id, e)
            report.results.append(KeyDeletion(key=key, deleted=False, error=str(e)))
        else:
            report.results.append(KeyDeletion(key=key, deleted=True))

    record.delete()
    logger.info(
        "Deleted media %s (%d objects, %d failures)", report.media_id, len(report.results), len(report.failed_keys)
    )
    dispatch_removed(report.media_id, owner_id)
    return report
