from django.conf import settings
from rest_framework import serializers

from .models import MediaRecord, Rendition
from .s3 import get_storage
from .utils import guess_kind


class PresignRequestSerializer(serializers.Serializer):
    filename = serializers.CharField(max_length=512)
    mimeType = serializers.CharField(max_length=128)
    conversationId = serializers.CharField(max_length=64, required=False, allow_blank=True)
    messageId = serializers.CharField(max_length=64, required=False, allow_blank=True)

    def validate_mimeType(self, value):
        if guess_kind(value) is None:
            raise serializers.ValidationError(f"Unsupported media type: {value}")
        return value


class PresignResponseSerializer(serializers.Serializer):
    presignedUrl = serializers.URLField()
    key = serializers.CharField()
    mediaId = serializers.UUIDField()
    headers = serializers.DictField(child=serializers.CharField(), required=False)
    expiresIn = serializers.IntegerField()


class ConfirmUploadSerializer(serializers.Serializer):
    mediaId = serializers.UUIDField()


class MediaUpdateSerializer(serializers.Serializer):
    isPublic = serializers.BooleanField(required=False)
    peopleTagged = serializers.ListField(
        child=serializers.CharField(max_length=64),
        required=False,
        allow_empty=True,
    )

    def validate_peopleTagged(self, value):
        """De-duplicate while preserving order."""
        seen = set()
        deduped = []
        for s in value:
            if s not in seen:
                seen.add(s)
                deduped.append(s)
        return deduped


class MediaListQuerySerializer(serializers.Serializer):
    mediaType = serializers.ChoiceField(choices=MediaRecord.Kind.choices, required=False)
    status = serializers.ChoiceField(choices=MediaRecord.Status.choices, required=False)
    conversationId = serializers.CharField(required=False)
    personId = serializers.CharField(required=False)
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)
    includeVersions = serializers.BooleanField(default=False)


def rendition_url(rendition: Rendition) -> str:
    if settings.MEDIA_PRESIGN_GET_URLS:
        return get_storage().presigned_get(rendition.storage_key)
    return rendition.url


class RenditionSerializer(serializers.ModelSerializer):
    storageKey = serializers.CharField(source="storage_key")
    url = serializers.SerializerMethodField()
    byteSize = serializers.IntegerField(source="byte_size")
    contentType = serializers.CharField(source="content_type")
    position = serializers.FloatField(source="position_seconds", allow_null=True)

    class Meta:
        model = Rendition
        fields = ["storageKey", "url", "contentType", "width", "height", "byteSize", "purpose", "position"]

    def get_url(self, obj):
        return rendition_url(obj)


def build_versions(record: MediaRecord) -> dict:
    """
    {version name: rendition}. Videos also carry the ordered `thumbnails`
    list, with `thumbnail` pointing at the primary one.

    Only generated renditions appear here, so a pending record has no
    versions. The uploaded object is always at the top-level `key`.
    """
    renditions = list(record.renditions.all())
    if record.kind == MediaRecord.Kind.VIDEO:
        thumbs = sorted((r for r in renditions if r.purpose == Rendition.Purpose.THUMBNAIL), key=lambda r: r.ordinal)
        versions = {
            r.name: RenditionSerializer(r).data for r in renditions if r.purpose == Rendition.Purpose.TRANSCODED
        }
        primary = next((r for r in thumbs if r.is_primary), None)
        if primary is not None:
            versions["thumbnail"] = RenditionSerializer(primary).data
        if thumbs:
            versions["thumbnails"] = RenditionSerializer(thumbs, many=True).data
        return versions
    return {r.name: RenditionSerializer(r).data for r in renditions}


class MediaRecordSerializer(serializers.ModelSerializer):
    ownerId = serializers.CharField(source="owner_id")
    mediaType = serializers.CharField(source="kind")
    mimeType = serializers.CharField(source="declared_content_type")
    originalName = serializers.CharField(source="original_filename")
    key = serializers.CharField(source="original_key")
    errorReason = serializers.CharField(source="error_reason")
    width = serializers.IntegerField(source="original_width", allow_null=True)
    height = serializers.IntegerField(source="original_height", allow_null=True)
    duration = serializers.FloatField(source="duration_seconds", allow_null=True)
    conversationId = serializers.CharField(source="conversation_id")
    messageId = serializers.CharField(source="message_id")
    peopleTagged = serializers.JSONField(source="people_tagged")
    isPublic = serializers.BooleanField(source="is_public")
    createdAt = serializers.DateTimeField(source="created_at")
    updatedAt = serializers.DateTimeField(source="updated_at")

    class Meta:
        model = MediaRecord
        fields = [
            "id",
            "ownerId",
            "mediaType",
            "mimeType",
            "originalName",
            "key",
            "status",
            "errorReason",
            "width",
            "height",
            "duration",
            "bitrate",
            "codec",
            "conversationId",
            "messageId",
            "peopleTagged",
            "isPublic",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields

    def __init__(self, *args, include_versions=True, **kwargs):
        super().__init__(*args, **kwargs)
        self.include_versions = include_versions

    def to_representation(self, instance):
        data = super().to_representation(instance)
        if self.include_versions:
            data["versions"] = build_versions(instance)
        return data
