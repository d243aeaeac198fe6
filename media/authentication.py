from dataclasses import dataclass

from django.conf import settings
from rest_framework import authentication


@dataclass(frozen=True)
class Owner:
    """Caller identity asserted by the API gateway."""

    id: str
    is_authenticated: bool = True


class OwnerHeaderAuthentication(authentication.BaseAuthentication):
    """
    Trust the gateway's identity header. Authentication itself happens
    upstream; this service only compares owners.
    """

    def authenticate(self, request):
        header = "HTTP_" + settings.MEDIA_OWNER_HEADER.upper().replace("-", "_")
        owner_id = (request.META.get(header) or "").strip()
        if not owner_id:
            return None
        return Owner(id=owner_id), None

    def authenticate_header(self, request):
        return settings.MEDIA_OWNER_HEADER
