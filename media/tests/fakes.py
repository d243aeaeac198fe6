"""
Test doubles and factories shared by the media tests.
"""
import threading
from io import BytesIO
from pathlib import Path

from PIL import Image

from media.exceptions import StorageError
from media.models import MediaRecord


class FakeStorage:
    """In-memory object store with the same interface as S3Storage."""

    def __init__(self, fail_put=(), fail_delete=(), fail_head=False):
        self.objects = {}
        self.fail_put = tuple(fail_put)
        self.fail_delete = tuple(fail_delete)
        self.fail_head = fail_head
        self.put_calls = []
        self._lock = threading.Lock()

    def _matches(self, key, patterns):
        return any(p in key for p in patterns)

    def put(self, key, data, content_type, metadata=None):
        with self._lock:
            self.put_calls.append(key)
        if self._matches(key, self.fail_put):
            raise StorageError(f"Failed to upload {key}: injected")
        with self._lock:
            self.objects[key] = {"data": bytes(data), "content_type": content_type, "metadata": dict(metadata or {})}
        return {"key": key, "size": len(data), "url": self.object_url(key)}

    def put_file(self, key, local_path, content_type, metadata=None):
        return self.put(key, Path(local_path).read_bytes(), content_type, metadata)

    def get(self, key):
        if key not in self.objects:
            raise StorageError(f"Failed to read {key}: missing")
        return self.objects[key]["data"]

    def download(self, key, dest):
        dest = Path(dest)
        dest.write_bytes(self.get(key))
        return dest

    def presigned_put(self, key, content_type=None, expires=None):
        headers = {"Content-Type": content_type} if content_type else {}
        return {"url": f"https://s3.test/bucket/{key}?X-Amz-Signature=put", "headers": headers, "expires_in": expires or 900}

    def presigned_get(self, key, expires=None):
        return f"https://s3.test/bucket/{key}?X-Amz-Signature=get"

    def head(self, key):
        if self.fail_head:
            raise StorageError(f"Failed to stat {key}: injected")
        obj = self.objects.get(key)
        if obj is None:
            return None
        return {"key": key, "size": len(obj["data"]), "content_type": obj["content_type"], "metadata": obj["metadata"]}

    def delete(self, key):
        if self._matches(key, self.fail_delete):
            raise StorageError(f"Failed to delete {key}: injected")
        with self._lock:
            self.objects.pop(key, None)

    def list(self, prefix=""):
        return [{"key": k, "size": len(v["data"])} for k, v in sorted(self.objects.items()) if k.startswith(prefix)]

    def object_url(self, key):
        return f"https://s3.test/bucket/{key}"


def image_bytes(size, fmt="JPEG", mode="RGB", color=(200, 30, 30)):
    buf = BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def make_record(
    kind=MediaRecord.Kind.IMAGE,
    status=MediaRecord.Status.PROCESSING,
    owner_id="user-1",
    key=None,
    content_type=None,
    filename=None,
    **fields,
):
    if key is None:
        key = "images/user-1/2024/05/06/abc.jpg" if kind == MediaRecord.Kind.IMAGE else "videos/user-1/2024/05/06/abc.mp4"
    if content_type is None:
        content_type = "image/jpeg" if kind == MediaRecord.Kind.IMAGE else "video/mp4"
    return MediaRecord.objects.create(
        owner_id=owner_id,
        kind=kind,
        declared_content_type=content_type,
        original_filename=filename or key.rsplit("/", 1)[-1],
        original_key=key,
        status=status,
        **fields,
    )
