"""
Fire-and-forget notifications to the search service.

Failures are logged and dropped: indexing never blocks or fails the
media operation that triggered it.
"""
import logging

import requests
from celery import shared_task
from django.conf import settings

logger = logging.getLogger(__name__)


def build_index_payload(record) -> dict:
    content = " ".join(p for p in [record.original_filename, record.kind, record.declared_content_type] if p)
    metadata = {
        "mediaType": record.kind,
        "mimeType": record.declared_content_type,
        "width": record.original_width,
        "height": record.original_height,
        "isPublic": record.is_public,
    }
    if record.duration_seconds is not None:
        metadata["duration"] = record.duration_seconds
    return {
        "contentId": str(record.id),
        "contentType": "media",
        "userId": record.owner_id,
        "content": content,
        "metadata": metadata,
        "conversationId": record.conversation_id or None,
        "peopleTagged": list(record.people_tagged or []),
    }


@shared_task(ignore_result=True)
def notify_search_index(action: str, payload: dict):
    base = settings.SEARCH_SERVICE_URL.rstrip("/")
    if not base:
        return
    timeout = settings.SEARCH_SERVICE_TIMEOUT
    try:
        if action == "index":
            resp = requests.post(f"{base}/index", json=payload, timeout=timeout)
        elif action == "delete":
            resp = requests.delete(f"{base}/index/media/{payload['contentId']}", timeout=timeout)
        else:
            logger.error("Unknown search index action %r", action)
            return
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.warning("Search index %s for media %s failed: %s", action, payload.get("contentId"), e)


def _dispatch(action: str, payload: dict):
    if not settings.SEARCH_SERVICE_URL:
        logger.debug("SEARCH_SERVICE_URL not set; skipping %s for media %s", action, payload["contentId"])
        return
    try:
        notify_search_index.delay(action, payload)
    except Exception:
        logger.warning("Could not enqueue search index %s for media %s", action, payload["contentId"], exc_info=True)


def dispatch_indexed(record):
    _dispatch("index", build_index_payload(record))


def dispatch_removed(media_id, owner_id):
    _dispatch("delete", {"contentId": str(media_id), "contentType": "media", "userId": owner_id})
