import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import F
from django.utils import timezone

from .config import ImageDerivativeConfig, VideoDerivativeConfig
from .images import ImageDerivativeEngine
from .models import MediaRecord
from .s3 import get_storage
from .search_index import notify_search_index  # noqa: F401  (registers the task)
from .videos import VideoDerivativeEngine

logger = logging.getLogger(__name__)

PROCESSING_TIMED_OUT = "processing timed out"


def engine_for(record: MediaRecord, storage=None):
    storage = storage or get_storage()
    if record.kind == MediaRecord.Kind.IMAGE:
        return ImageDerivativeEngine(storage, ImageDerivativeConfig.from_settings())
    if record.kind == MediaRecord.Kind.VIDEO:
        return VideoDerivativeEngine(storage, VideoDerivativeConfig.from_settings())
    raise ValueError(f"No derivative engine for media kind {record.kind!r}")


@shared_task(bind=True, acks_late=True, reject_on_worker_lost=True, ignore_result=True)
def process_media(self, media_id: str):
    """
    Generate the rendition set for one confirmed record.

    Late acknowledgement means a worker crash redelivers the message; the
    status check makes redelivery safe because only `processing` records
    are worked on. Errors end up on the record, never raised from here.
    """
    try:
        record = MediaRecord.objects.get(pk=media_id)
    except MediaRecord.DoesNotExist:
        logger.warning("Media %s no longer exists; nothing to process", media_id)
        return

    if record.status != MediaRecord.Status.PROCESSING:
        logger.info("Media %s is %s; skipping", media_id, record.status)
        return

    # the stuck-processing clock starts when a worker picks the record up
    MediaRecord.objects.filter(pk=record.pk, status=MediaRecord.Status.PROCESSING).update(
        processing_attempts=F("processing_attempts") + 1,
        processing_started_at=timezone.now(),
    )
    try:
        engine = engine_for(record)
    except Exception as e:
        logger.exception("Could not build engine for media %s", media_id)
        record.transition(MediaRecord.Status.FAILED, error_reason=str(e)[:4000])
        return
    engine.run(record)


def reconcile(timeout_seconds=None, max_attempts=None) -> dict:
    """
    Deal with records stuck in `processing` (e.g. the worker died mid-way):
    re-queue them while attempts remain, otherwise mark them failed.
    """
    timeout_seconds = timeout_seconds or settings.MEDIA_PROCESSING_TIMEOUT
    max_attempts = max_attempts or settings.MEDIA_MAX_PROCESSING_ATTEMPTS
    cutoff = timezone.now() - timedelta(seconds=timeout_seconds)

    stuck = MediaRecord.objects.filter(
        status=MediaRecord.Status.PROCESSING,
        processing_started_at__lt=cutoff,
    )
    requeued, failed = [], []
    for record in stuck:
        if record.processing_attempts >= max_attempts:
            if record.transition(MediaRecord.Status.FAILED, error_reason=PROCESSING_TIMED_OUT):
                failed.append(str(record.id))
            continue
        # restart the clock so the next sweep waits a full timeout again
        MediaRecord.objects.filter(pk=record.pk, status=MediaRecord.Status.PROCESSING).update(
            processing_started_at=timezone.now()
        )
        process_media.delay(str(record.id))
        requeued.append(str(record.id))

    if requeued or failed:
        logger.warning("Reconciled stuck media: %d re-queued, %d failed", len(requeued), len(failed))
    return {"requeued": requeued, "failed": failed}


@shared_task(ignore_result=True)
def reconcile_processing():
    return reconcile()
