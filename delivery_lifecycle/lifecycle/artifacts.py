"""
Artifact locator validation.

The lifecycle never touches artifact bytes; it only checks that a delivery
points at a well-formed URL and classifies the host it points at.
"""

import re
from typing import Iterable, Optional, Tuple
from urllib.parse import urlparse

from ..config import get_settings
from ..errors import InvalidArtifactLocator
from .enums import VideoType

_DRIVE_FILE_ID = re.compile(r"/d/([^/?#]+)")
_YOUTUBE_ID = re.compile(r"(?:youtu\.be/|v/|u/\w/|embed/|shorts/|[?&]v=)([^#&?/]{11})")

YOUTUBE_HOSTS = ("youtube.com", "youtu.be")
DRIVE_HOST = "drive.google.com"


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def youtube_id(url: str) -> Optional[str]:
    """Extract the 11-character YouTube video id, if present."""
    match = _YOUTUBE_ID.search(url)
    return match.group(1) if match else None


def drive_preview_url(url: str) -> str:
    """Rewrite a Google Drive file link to its embeddable preview form."""
    match = _DRIVE_FILE_ID.search(url)
    if match:
        return f"https://drive.google.com/file/d/{match.group(1)}/preview"
    return url


def classify_locator(
    locator: str,
    allowed_schemes: Optional[Iterable[str]] = None,
) -> Tuple[VideoType, str]:
    """Validate ``locator`` and return its video type and normalized URL.

    Raises:
        InvalidArtifactLocator: not a URL, disallowed scheme, no host, or a
            Drive folder instead of a file
    """
    schemes = [s.lower() for s in (allowed_schemes or get_settings().artifact_schemes())]
    candidate = (locator or "").strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        raise InvalidArtifactLocator(locator, "Provide a link to the video file")

    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in schemes:
        raise InvalidArtifactLocator(
            locator,
            f"Video link must start with one of: {', '.join(s + '://' for s in schemes)}",
        )
    host = (parsed.hostname or "").lower()
    if not host or "." not in host:
        raise InvalidArtifactLocator(locator, "Video link has no valid host")

    if any(_host_matches(host, h) for h in YOUTUBE_HOSTS):
        return VideoType.YOUTUBE, candidate

    if _host_matches(host, DRIVE_HOST):
        if "/folders/" in parsed.path:
            raise InvalidArtifactLocator(
                locator, "Use the link of a video file, not of a folder"
            )
        if "/file/d/" in parsed.path:
            return VideoType.GDRIVE, drive_preview_url(candidate)

    return VideoType.LINK, candidate
