import json
import logging

from django.db import connection
from django.db.models import Count, Q, Sum
from rest_framework import status, views
from rest_framework.response import Response

from .exceptions import (
    MediaNotFound,
    MissingOriginal,
    StorageError,
    UnsupportedMediaType,
    VerificationFailed,
)
from .models import MediaRecord, Rendition
from .serializers import (
    ConfirmUploadSerializer,
    MediaListQuerySerializer,
    MediaRecordSerializer,
    MediaUpdateSerializer,
    PresignRequestSerializer,
    PresignResponseSerializer,
)
from .services import confirm_upload, create_upload, delete_media, get_owned_record, update_media

logger = logging.getLogger(__name__)


def filter_tagged(qs, person_id):
    if connection.features.supports_json_field_contains:
        return qs.filter(people_tagged__contains=[person_id])
    # SQLite stores the list as JSON text; match the quoted element
    return qs.filter(people_tagged__icontains=json.dumps(person_id))


def _detail(message, code):
    return Response({"detail": str(message)}, status=code)


class PresignUploadView(views.APIView):
    """
    Returns a presigned PUT URL + allocated key so the client can upload
    directly to MinIO/S3 without streaming through Django. Creates the
    pending media record.
    """

    def post(self, request):
        ser = PresignRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            ticket = create_upload(
                request.user.id,
                data["filename"],
                data["mimeType"],
                conversation_id=data.get("conversationId", ""),
                message_id=data.get("messageId", ""),
            )
        except UnsupportedMediaType as e:
            return _detail(e, status.HTTP_400_BAD_REQUEST)
        except StorageError as e:
            logger.error("Presign failed: %s", e)
            return _detail("Failed to generate upload URL", status.HTTP_502_BAD_GATEWAY)

        out = PresignResponseSerializer({
            "presignedUrl": ticket.url,
            "key": ticket.key,
            "mediaId": ticket.media_id,
            "headers": ticket.headers,
            "expiresIn": ticket.expires_in,
        }).data
        return Response(out, status=status.HTTP_201_CREATED)


class ConfirmUploadView(views.APIView):
    """
    Verifies the direct upload and queues derivative generation. Replies
    immediately; clients poll the record to see the outcome.
    """

    def post(self, request):
        ser = ConfirmUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        media_id = ser.validated_data["mediaId"]

        try:
            result = confirm_upload(media_id, request.user.id)
        except MediaNotFound as e:
            return _detail(e, status.HTTP_404_NOT_FOUND)
        except (MissingOriginal, VerificationFailed) as e:
            return _detail(e, status.HTTP_400_BAD_REQUEST)

        message = "Upload confirmed" if result.dispatched else f"Media already {result.status}"
        return Response({"message": message, "mediaId": result.media_id, "status": result.status})


class MediaListView(views.APIView):
    def get(self, request):
        ser = MediaListQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        q = ser.validated_data

        qs = MediaRecord.objects.filter(owner_id=request.user.id)
        if q.get("mediaType"):
            qs = qs.filter(kind=q["mediaType"])
        if q.get("status"):
            qs = qs.filter(status=q["status"])
        if q.get("conversationId"):
            qs = qs.filter(conversation_id=q["conversationId"])
        if q.get("personId"):
            qs = filter_tagged(qs, q["personId"])
        if q.get("startDate"):
            qs = qs.filter(created_at__gte=q["startDate"])
        if q.get("endDate"):
            qs = qs.filter(created_at__lte=q["endDate"])

        page, limit = q["page"], q["limit"]
        total = qs.count()
        if q["includeVersions"]:
            qs = qs.prefetch_related("renditions")
        items = qs[(page - 1) * limit: page * limit]

        data = MediaRecordSerializer(items, many=True, include_versions=q["includeVersions"]).data
        return Response({"media": data, "totalCount": total, "page": page, "limit": limit})


class MediaStatsView(views.APIView):
    def get(self, request):
        owned = MediaRecord.objects.filter(owner_id=request.user.id)
        by_kind = {k: 0 for k in MediaRecord.Kind.values}
        for row in owned.values("kind").annotate(n=Count("id")):
            by_kind[row["kind"]] = row["n"]
        by_status = {s: 0 for s in MediaRecord.Status.values}
        for row in owned.values("status").annotate(n=Count("id")):
            by_status[row["status"]] = row["n"]

        stored = Rendition.objects.filter(record__owner_id=request.user.id).aggregate(
            total=Sum("byte_size"),
            image=Sum("byte_size", filter=Q(record__kind=MediaRecord.Kind.IMAGE)),
            video=Sum("byte_size", filter=Q(record__kind=MediaRecord.Kind.VIDEO)),
        )
        return Response({
            "totalCount": sum(by_kind.values()),
            "byType": by_kind,
            "byStatus": by_status,
            "storageUsed": {
                "total": stored["total"] or 0,
                "byType": {"image": stored["image"] or 0, "video": stored["video"] or 0},
            },
        })


class MediaDetailView(views.APIView):
    def get(self, request, media_id):
        try:
            record = get_owned_record(media_id, request.user.id)
        except MediaNotFound as e:
            return _detail(e, status.HTTP_404_NOT_FOUND)
        return Response(MediaRecordSerializer(record).data)

    def patch(self, request, media_id):
        ser = MediaUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            record = update_media(
                media_id,
                request.user.id,
                is_public=ser.validated_data.get("isPublic"),
                people_tagged=ser.validated_data.get("peopleTagged"),
            )
        except MediaNotFound as e:
            return _detail(e, status.HTTP_404_NOT_FOUND)
        return Response(MediaRecordSerializer(record, include_versions=False).data)

    def delete(self, request, media_id):
        try:
            report = delete_media(media_id, request.user.id)
        except MediaNotFound as e:
            return _detail(e, status.HTTP_404_NOT_FOUND)
        return Response({
            "id": report.media_id,
            "results": [{"key": r.key, "deleted": r.deleted, "error": r.error} for r in report.results],
        })
