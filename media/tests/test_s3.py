"""
Tests for media/s3.py against a stubbed boto3 client.
"""
import re
from datetime import datetime, timezone
from io import BytesIO
from urllib.parse import parse_qs, urlparse

import boto3
from botocore.config import Config
from botocore.response import StreamingBody
from botocore.stub import Stubber
from django.test import SimpleTestCase

from media.exceptions import StorageError
from media.s3 import S3Storage, _s3_metadata, generate_key


def make_client(endpoint="http://minio.internal:9000"):
    return boto3.client(
        "s3",
        region_name="us-east-1",
        endpoint_url=endpoint,
        aws_access_key_id="test",
        aws_secret_access_key="test",
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


class GenerateKeyTest(SimpleTestCase):
    def test_partitioned_by_owner_and_date(self):
        key = generate_key("user-1", "jpg", "images/", now=datetime(2024, 3, 7, tzinfo=timezone.utc))
        self.assertRegex(key, r"^images/user-1/2024/03/07/[0-9a-f-]{36}\.jpg$")

    def test_unique(self):
        self.assertNotEqual(generate_key("u", "mp4"), generate_key("u", "mp4"))


class S3StorageTest(SimpleTestCase):
    def setUp(self):
        self.client = make_client()
        self.presign_client = make_client("http://localhost:9000")
        self.stubber = Stubber(self.client)
        self.stubber.activate()
        self.addCleanup(self.stubber.deactivate)
        self.storage = S3Storage(
            bucket="media-test",
            client=self.client,
            presign_client=self.presign_client,
            public_endpoint="http://localhost:9000/",
        )

    def test_head_returns_metadata(self):
        self.stubber.add_response(
            "head_object",
            {"ContentType": "image/jpeg", "ContentLength": 42, "ETag": '"abc"', "Metadata": {"userid": "u1"}},
            {"Bucket": "media-test", "Key": "images/a.jpg"},
        )
        info = self.storage.head("images/a.jpg")
        self.assertEqual(info["size"], 42)
        self.assertEqual(info["content_type"], "image/jpeg")
        self.assertEqual(info["metadata"], {"userid": "u1"})
        self.stubber.assert_no_pending_responses()

    def test_head_missing_key_is_none(self):
        self.stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        self.assertIsNone(self.storage.head("images/missing.jpg"))

    def test_head_other_errors_raise(self):
        self.stubber.add_client_error("head_object", service_error_code="AccessDenied", http_status_code=403)
        with self.assertRaises(StorageError):
            self.storage.head("images/secret.jpg")

    def test_put(self):
        self.stubber.add_response(
            "put_object",
            {"ETag": '"etag"'},
            {
                "Bucket": "media-test",
                "Key": "images/a_small.jpg",
                "Body": b"data",
                "ContentType": "image/jpeg",
                "Metadata": {"type": "small", "width": "800"},
            },
        )
        result = self.storage.put("images/a_small.jpg", b"data", "image/jpeg", {"type": "small", "width": 800})
        self.assertEqual(result["size"], 4)
        self.assertEqual(result["url"], "http://localhost:9000/media-test/images/a_small.jpg")

    def test_put_failure(self):
        self.stubber.add_client_error("put_object", service_error_code="InternalError", http_status_code=500)
        with self.assertRaisesMessage(StorageError, "images/a.jpg"):
            self.storage.put("images/a.jpg", b"data", "image/jpeg")

    def test_get(self):
        self.stubber.add_response(
            "get_object",
            {"Body": StreamingBody(BytesIO(b"bytes"), 5)},
            {"Bucket": "media-test", "Key": "images/a.jpg"},
        )
        self.assertEqual(self.storage.get("images/a.jpg"), b"bytes")

    def test_delete(self):
        self.stubber.add_response("delete_object", {}, {"Bucket": "media-test", "Key": "images/a.jpg"})
        self.storage.delete("images/a.jpg")
        self.stubber.assert_no_pending_responses()

    def test_delete_failure(self):
        self.stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)
        with self.assertRaises(StorageError):
            self.storage.delete("images/a.jpg")

    def test_presigned_put_uses_public_endpoint(self):
        signed = self.storage.presigned_put("images/u/a.jpg", content_type="image/jpeg", expires=120)
        url = urlparse(signed["url"])
        self.assertEqual(url.netloc, "localhost:9000")
        self.assertEqual(url.path, "/media-test/images/u/a.jpg")
        self.assertEqual(parse_qs(url.query)["X-Amz-Expires"], ["120"])
        self.assertEqual(signed["headers"], {"Content-Type": "image/jpeg"})
        self.assertEqual(signed["expires_in"], 120)

    def test_object_url_quotes_key(self):
        self.assertEqual(
            self.storage.object_url("images/u/a b.jpg"),
            "http://localhost:9000/media-test/images/u/a%20b.jpg",
        )


class MetadataTest(SimpleTestCase):
    def test_values_are_ascii_strings(self):
        meta = _s3_metadata({"originalFilename": "café.jpg", "width": 10, "skip": None})
        self.assertEqual(set(meta), {"originalFilename", "width"})
        self.assertEqual(meta["width"], "10")
        self.assertTrue(re.fullmatch(r"[\x20-\x7e]+", meta["originalFilename"]))

