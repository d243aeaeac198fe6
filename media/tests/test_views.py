"""
API tests for media/views.py
"""
import uuid
from unittest import mock

from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from media.models import MediaRecord, Rendition
from media.tests.fakes import FakeStorage, make_record


def add_rendition(record, name, purpose=None, **fields):
    key = f"{record.original_key.rsplit('.', 1)[0]}_{name}.jpg"
    defaults = {
        "content_type": "image/jpeg",
        "width": 300,
        "height": 300,
        "byte_size": 1000,
    }
    defaults.update(fields)
    return Rendition.objects.create(
        record=record,
        name=name,
        purpose=purpose or name,
        storage_key=key,
        url=f"https://s3.test/bucket/{key}",
        **defaults,
    )


@override_settings(MEDIA_PRESIGN_GET_URLS=False)
class MediaApiTestCase(TestCase):
    def setUp(self):
        self.storage = FakeStorage()
        patcher = mock.patch("media.services.get_storage", return_value=self.storage)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.client = APIClient()
        self.client.credentials(HTTP_X_USER_ID="user-1")


class AuthenticationTest(MediaApiTestCase):
    def test_missing_identity_header(self):
        anonymous = APIClient()
        for method, url in [
            ("get", reverse("media_list")),
            ("get", reverse("media_stats")),
            ("post", reverse("media_presign")),
            ("post", reverse("media_confirm")),
            ("get", reverse("media_detail", args=[uuid.uuid4()])),
        ]:
            resp = getattr(anonymous, method)(url)
            self.assertEqual(resp.status_code, 401, url)


class PresignUploadViewTest(MediaApiTestCase):
    def test_presign(self):
        resp = self.client.post(
            reverse("media_presign"),
            {"filename": "cat.png", "mimeType": "image/png", "conversationId": "conv-1"},
            format="json",
        )
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["key"].startswith("images/user-1/"))
        self.assertTrue(body["key"].endswith(".png"))
        self.assertIn(body["key"], body["presignedUrl"])
        self.assertEqual(body["headers"], {"Content-Type": "image/png"})
        self.assertEqual(body["expiresIn"], 900)

        record = MediaRecord.objects.get(pk=body["mediaId"])
        self.assertEqual(record.owner_id, "user-1")
        self.assertEqual(record.status, MediaRecord.Status.PENDING)
        self.assertEqual(record.conversation_id, "conv-1")

    def test_unsupported_type(self):
        resp = self.client.post(
            reverse("media_presign"), {"filename": "doc.pdf", "mimeType": "application/pdf"}, format="json"
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("mimeType", resp.json())
        self.assertFalse(MediaRecord.objects.exists())

    def test_missing_fields(self):
        resp = self.client.post(reverse("media_presign"), {}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(set(resp.json()), {"filename", "mimeType"})


@mock.patch("media.tasks.process_media")
class ConfirmUploadViewTest(MediaApiTestCase):
    def test_confirm(self, process_media):
        process_media.delay.return_value = mock.Mock(id="task-9")
        record = make_record(status=MediaRecord.Status.PENDING)
        self.storage.objects[record.original_key] = {"data": b"x", "content_type": "image/jpeg", "metadata": {}}

        with self.captureOnCommitCallbacks(execute=True):
            resp = self.client.post(reverse("media_confirm"), {"mediaId": str(record.id)}, format="json")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"message": "Upload confirmed", "mediaId": str(record.id), "status": "processing"})
        process_media.delay.assert_called_once_with(str(record.id))

    def test_confirm_again_reports_current_status(self, process_media):
        record = make_record(status=MediaRecord.Status.COMPLETED)
        resp = self.client.post(reverse("media_confirm"), {"mediaId": str(record.id)}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "completed")
        process_media.delay.assert_not_called()

    def test_confirm_without_upload(self, process_media):
        record = make_record(status=MediaRecord.Status.PENDING)
        resp = self.client.post(reverse("media_confirm"), {"mediaId": str(record.id)}, format="json")
        self.assertEqual(resp.status_code, 400)
        record.refresh_from_db()
        self.assertEqual(record.status, MediaRecord.Status.FAILED)

    def test_confirm_someone_elses_media(self, process_media):
        record = make_record(status=MediaRecord.Status.PENDING, owner_id="user-2")
        resp = self.client.post(reverse("media_confirm"), {"mediaId": str(record.id)}, format="json")
        self.assertEqual(resp.status_code, 404)

    def test_invalid_media_id(self, process_media):
        resp = self.client.post(reverse("media_confirm"), {"mediaId": "nope"}, format="json")
        self.assertEqual(resp.status_code, 400)


class MediaDetailViewTest(MediaApiTestCase):
    def test_image_detail_with_versions(self):
        record = make_record(status=MediaRecord.Status.COMPLETED, original_width=4000, original_height=3000)
        for name in ("original", "thumbnail", "small", "medium", "large"):
            add_rendition(record, name)

        resp = self.client.get(reverse("media_detail", args=[record.id]))

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["id"], str(record.id))
        self.assertEqual(body["status"], "completed")
        self.assertEqual(body["mediaType"], "image")
        self.assertEqual((body["width"], body["height"]), (4000, 3000))
        self.assertEqual(set(body["versions"]), {"original", "thumbnail", "small", "medium", "large"})
        thumb = body["versions"]["thumbnail"]
        self.assertEqual(thumb["storageKey"], "images/user-1/2024/05/06/abc_thumbnail.jpg")
        self.assertEqual(thumb["url"], "https://s3.test/bucket/images/user-1/2024/05/06/abc_thumbnail.jpg")

    def test_video_detail_exposes_primary_and_all_thumbnails(self):
        record = make_record(kind=MediaRecord.Kind.VIDEO, status=MediaRecord.Status.COMPLETED, duration_seconds=90.0)
        add_rendition(record, "transcoded", content_type="video/mp4", width=1280, height=720)
        for i, pos in enumerate([22.5, 45.0, 67.5]):
            add_rendition(
                record, f"thumbnail_{i}", purpose="thumbnail", position_seconds=pos, ordinal=i, is_primary=(i == 1)
            )

        body = self.client.get(reverse("media_detail", args=[record.id])).json()

        self.assertEqual(body["duration"], 90.0)
        self.assertEqual(body["versions"]["transcoded"]["contentType"], "video/mp4")
        self.assertEqual(body["versions"]["thumbnail"]["position"], 45.0)
        self.assertEqual([t["position"] for t in body["versions"]["thumbnails"]], [22.5, 45.0, 67.5])

    def test_pending_media_has_no_versions(self):
        record = make_record(status=MediaRecord.Status.PENDING)
        body = self.client.get(reverse("media_detail", args=[record.id])).json()
        self.assertEqual(body["status"], "pending")
        self.assertEqual(body["versions"], {})
        self.assertEqual(body["key"], record.original_key)

    def test_failed_media_reports_reason(self):
        record = make_record(status=MediaRecord.Status.FAILED, error_reason="No video stream found")
        body = self.client.get(reverse("media_detail", args=[record.id])).json()
        self.assertEqual(body["errorReason"], "No video stream found")

    def test_presigned_urls(self):
        record = make_record(status=MediaRecord.Status.COMPLETED)
        add_rendition(record, "small")
        with override_settings(MEDIA_PRESIGN_GET_URLS=True), \
                mock.patch("media.serializers.get_storage", return_value=self.storage):
            body = self.client.get(reverse("media_detail", args=[record.id])).json()
        self.assertIn("X-Amz-Signature=get", body["versions"]["small"]["url"])

    def test_other_owner_gets_404(self):
        record = make_record(owner_id="user-2")
        self.assertEqual(self.client.get(reverse("media_detail", args=[record.id])).status_code, 404)
        self.assertEqual(self.client.delete(reverse("media_detail", args=[record.id])).status_code, 404)
        self.assertTrue(MediaRecord.objects.filter(pk=record.pk).exists())

    def test_patch(self):
        record = make_record(status=MediaRecord.Status.COMPLETED)
        resp = self.client.patch(
            reverse("media_detail", args=[record.id]),
            {"isPublic": True, "peopleTagged": ["u2", "u3", "u2"]},
            format="json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["isPublic"])
        self.assertEqual(resp.json()["peopleTagged"], ["u2", "u3"])
        self.assertNotIn("versions", resp.json())

    def test_delete(self):
        record = make_record(status=MediaRecord.Status.COMPLETED)
        small = add_rendition(record, "small")
        for key in (record.original_key, small.storage_key):
            self.storage.objects[key] = {"data": b"x", "content_type": "image/jpeg", "metadata": {}}
        self.storage.fail_delete = ("_small",)

        resp = self.client.delete(reverse("media_detail", args=[record.id]))

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["id"], str(record.id))
        self.assertEqual(
            [(r["key"], r["deleted"]) for r in body["results"]],
            [(record.original_key, True), (small.storage_key, False)],
        )
        self.assertTrue(body["results"][1]["error"])
        self.assertFalse(MediaRecord.objects.filter(pk=record.pk).exists())


class MediaListViewTest(MediaApiTestCase):
    def setUp(self):
        super().setUp()
        self.images = [make_record(status=MediaRecord.Status.COMPLETED, key=f"images/user-1/k{i}.jpg") for i in range(3)]
        self.video = make_record(
            kind=MediaRecord.Kind.VIDEO, status=MediaRecord.Status.FAILED, conversation_id="conv-7"
        )
        make_record(owner_id="user-2", key="images/user-2/other.jpg")
        add_rendition(self.images[0], "small")

    def test_lists_only_own_media(self):
        body = self.client.get(reverse("media_list")).json()
        self.assertEqual(body["totalCount"], 4)
        self.assertEqual({m["ownerId"] for m in body["media"]}, {"user-1"})
        self.assertNotIn("versions", body["media"][0])

    def test_filters(self):
        body = self.client.get(reverse("media_list"), {"mediaType": "video"}).json()
        self.assertEqual([m["id"] for m in body["media"]], [str(self.video.id)])

        body = self.client.get(reverse("media_list"), {"status": "completed"}).json()
        self.assertEqual(body["totalCount"], 3)

        body = self.client.get(reverse("media_list"), {"conversationId": "conv-7"}).json()
        self.assertEqual(body["totalCount"], 1)

    def test_filter_by_tagged_person(self):
        MediaRecord.objects.filter(pk=self.images[0].pk).update(people_tagged=["p-1", "p-2"])
        MediaRecord.objects.filter(pk=self.images[1].pk).update(people_tagged=["p-10"])

        body = self.client.get(reverse("media_list"), {"personId": "p-1"}).json()
        self.assertEqual([m["id"] for m in body["media"]], [str(self.images[0].id)])

        body = self.client.get(reverse("media_list"), {"personId": "p-3"}).json()
        self.assertEqual(body["totalCount"], 0)

    def test_pagination(self):
        body = self.client.get(reverse("media_list"), {"page": 2, "limit": 3}).json()
        self.assertEqual(body["totalCount"], 4)
        self.assertEqual((body["page"], body["limit"]), (2, 3))
        self.assertEqual(len(body["media"]), 1)

    def test_include_versions(self):
        body = self.client.get(reverse("media_list"), {"includeVersions": "true"}).json()
        by_id = {m["id"]: m for m in body["media"]}
        self.assertEqual(set(by_id[str(self.images[0].id)]["versions"]), {"small"})

    def test_bad_query(self):
        self.assertEqual(self.client.get(reverse("media_list"), {"limit": 500}).status_code, 400)
        self.assertEqual(self.client.get(reverse("media_list"), {"mediaType": "audio"}).status_code, 400)


class MediaStatsViewTest(MediaApiTestCase):
    def test_stats(self):
        image = make_record(status=MediaRecord.Status.COMPLETED)
        add_rendition(image, "small", byte_size=1500)
        add_rendition(image, "thumbnail", byte_size=500)
        video = make_record(kind=MediaRecord.Kind.VIDEO, status=MediaRecord.Status.COMPLETED)
        add_rendition(video, "transcoded", content_type="video/mp4", byte_size=10_000)
        make_record(status=MediaRecord.Status.PENDING, key="images/user-1/p.jpg")
        other = make_record(owner_id="user-2", status=MediaRecord.Status.COMPLETED, key="images/user-2/o.jpg")
        add_rendition(other, "small", byte_size=99)

        body = self.client.get(reverse("media_stats")).json()

        self.assertEqual(body["totalCount"], 3)
        self.assertEqual(body["byType"], {"image": 2, "video": 1})
        self.assertEqual(body["byStatus"], {"pending": 1, "processing": 0, "completed": 2, "failed": 0})
        self.assertEqual(body["storageUsed"], {"total": 12_000, "byType": {"image": 2000, "video": 10_000}})
