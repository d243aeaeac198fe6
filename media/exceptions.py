class MediaError(Exception):
    """Base class for errors raised by the media pipeline."""


class UnsupportedMediaType(MediaError):
    def __init__(self, content_type):
        self.content_type = content_type
        super().__init__(f"Unsupported media type: {content_type or '<empty>'}")


class MediaNotFound(MediaError):
    def __init__(self, media_id):
        self.media_id = media_id
        super().__init__(f"Media {media_id} not found")


class MissingOriginal(MediaError):
    def __init__(self, media_id):
        self.media_id = media_id
        super().__init__(f"Media {media_id} has no original key")


class VerificationFailed(MediaError):
    """The uploaded object could not be found in the object store."""


class InvalidTransition(MediaError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move media from {current} to {target}")


class StorageError(MediaError):
    """An object store call failed for a reason other than a missing key."""


class ProcessingError(MediaError):
    """Derivative generation failed; recorded on the media record."""


class ProbeFailed(ProcessingError):
    pass


class TranscodeFailed(ProcessingError):
    pass
