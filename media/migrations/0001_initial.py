import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="MediaRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("owner_id", models.CharField(db_index=True, max_length=128)),
                ("kind", models.CharField(choices=[("image", "Image"), ("video", "Video")], max_length=8)),
                ("declared_content_type", models.CharField(max_length=128)),
                ("original_filename", models.CharField(max_length=512)),
                ("original_key", models.CharField(blank=True, default="", max_length=512)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("error_reason", models.TextField(blank=True, default="")),
                ("original_width", models.PositiveIntegerField(blank=True, null=True)),
                ("original_height", models.PositiveIntegerField(blank=True, null=True)),
                ("duration_seconds", models.FloatField(blank=True, null=True)),
                ("bitrate", models.BigIntegerField(blank=True, null=True)),
                ("codec", models.CharField(blank=True, default="", max_length=64)),
                ("conversation_id", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("message_id", models.CharField(blank=True, default="", max_length=64)),
                ("people_tagged", models.JSONField(blank=True, default=list)),
                ("is_public", models.BooleanField(default=False)),
                ("processing_started_at", models.DateTimeField(blank=True, null=True)),
                ("processing_attempts", models.PositiveSmallIntegerField(default=0)),
                ("processing_task_id", models.CharField(blank=True, default="", max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["owner_id", "-created_at"], name="media_owner_created_idx"),
                    models.Index(fields=["status", "processing_started_at"], name="media_status_started_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Rendition",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=32)),
                (
                    "purpose",
                    models.CharField(
                        choices=[
                            ("original", "Original"),
                            ("thumbnail", "Thumbnail"),
                            ("small", "Small"),
                            ("medium", "Medium"),
                            ("large", "Large"),
                            ("transcoded", "Transcoded"),
                        ],
                        max_length=16,
                    ),
                ),
                ("storage_key", models.CharField(max_length=512, unique=True)),
                ("url", models.URLField(max_length=1024)),
                ("content_type", models.CharField(max_length=128)),
                ("width", models.PositiveIntegerField()),
                ("height", models.PositiveIntegerField()),
                ("byte_size", models.BigIntegerField()),
                ("position_seconds", models.FloatField(blank=True, null=True)),
                ("ordinal", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("is_primary", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "record",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="renditions",
                        to="media.mediarecord",
                    ),
                ),
            ],
            options={
                "ordering": ["ordinal", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("record", "name"), name="unique_rendition_name_per_record"),
                ],
            },
        ),
    ]
