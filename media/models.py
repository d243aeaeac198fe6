import uuid
from django.db import models
from django.utils import timezone

from .exceptions import InvalidTransition


class MediaRecord(models.Model):
    class Kind(models.TextChoices):
        IMAGE = "image"
        VIDEO = "video"

    class Status(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        COMPLETED = "completed"
        FAILED = "failed"

    # pending -> processing -> {completed, failed}; pending -> failed on verification
    TRANSITIONS = {
        Status.PENDING: {Status.PROCESSING, Status.FAILED},
        Status.PROCESSING: {Status.COMPLETED, Status.FAILED},
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner_id = models.CharField(max_length=128, db_index=True)
    kind = models.CharField(max_length=8, choices=Kind.choices)
    declared_content_type = models.CharField(max_length=128)
    original_filename = models.CharField(max_length=512)
    original_key = models.CharField(max_length=512, blank=True, default="")  # uploaded object's S3 key

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    error_reason = models.TextField(blank=True, default="")

    original_width = models.PositiveIntegerField(null=True, blank=True)
    original_height = models.PositiveIntegerField(null=True, blank=True)
    duration_seconds = models.FloatField(null=True, blank=True)
    bitrate = models.BigIntegerField(null=True, blank=True)
    codec = models.CharField(max_length=64, blank=True, default="")

    # opaque ids owned by the messaging service
    conversation_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    message_id = models.CharField(max_length=64, blank=True, default="")
    people_tagged = models.JSONField(default=list, blank=True)
    is_public = models.BooleanField(default=False)

    processing_started_at = models.DateTimeField(null=True, blank=True)
    processing_attempts = models.PositiveSmallIntegerField(default=0)
    processing_task_id = models.CharField(max_length=64, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["owner_id", "-created_at"], name="media_owner_created_idx"),
            models.Index(fields=["status", "processing_started_at"], name="media_status_started_idx"),
        ]

    def __str__(self):
        return f"{self.kind}:{self.id} ({self.status})"

    def transition(self, target, **fields) -> bool:
        """
        Move the record to `target` if it is still in the status this instance
        was loaded with. Returns False when another writer got there first.
        """
        if target not in self.TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(self.status, target)

        fields["status"] = target
        fields["updated_at"] = timezone.now()
        updated = MediaRecord.objects.filter(pk=self.pk, status=self.status).update(**fields)
        if not updated:
            return False
        for name, value in fields.items():
            setattr(self, name, value)
        return True

    def storage_keys(self) -> list[str]:
        """Every object key this record owns, original first, without duplicates."""
        keys = [self.original_key] if self.original_key else []
        for key in self.renditions.values_list("storage_key", flat=True):
            if key and key not in keys:
                keys.append(key)
        return keys


class Rendition(models.Model):
    class Purpose(models.TextChoices):
        ORIGINAL = "original"
        THUMBNAIL = "thumbnail"
        SMALL = "small"
        MEDIUM = "medium"
        LARGE = "large"
        TRANSCODED = "transcoded"

    record = models.ForeignKey(MediaRecord, related_name="renditions", on_delete=models.CASCADE)
    name = models.CharField(max_length=32)  # "original", "small", "thumbnail_0", ...
    purpose = models.CharField(max_length=16, choices=Purpose.choices)
    storage_key = models.CharField(max_length=512, unique=True)
    url = models.URLField(max_length=1024)
    content_type = models.CharField(max_length=128)
    width = models.PositiveIntegerField()
    height = models.PositiveIntegerField()
    byte_size = models.BigIntegerField()
    position_seconds = models.FloatField(null=True, blank=True)
    ordinal = models.PositiveSmallIntegerField(null=True, blank=True)
    is_primary = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["ordinal", "id"]
        constraints = [
            models.UniqueConstraint(fields=["record", "name"], name="unique_rendition_name_per_record"),
        ]

    def __str__(self):
        return f"{self.record_id}/{self.name}"
