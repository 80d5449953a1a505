"""Media validation: which bucket a file belongs to, and whether it fits."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from weddingbot.constants import BUCKET_PHOTOS, BUCKET_VIDEOS

_BYTES_PER_MB = 1024 * 1024

_BUCKET_BY_TOP_LEVEL = {
    "image": BUCKET_PHOTOS,
    "video": BUCKET_VIDEOS,
}


class RejectReason(str, Enum):
    UNSUPPORTED_TYPE = "unsupported-type"
    TOO_LARGE = "too-large"


@dataclass(frozen=True)
class Accepted:
    bucket: str
    extension: str
    size_mb: float


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason
    size_mb: float | None = None  # set for too-large rejections


ValidationOutcome = Accepted | Rejected


def size_in_mb(size_bytes: int) -> float:
    return size_bytes / _BYTES_PER_MB


def validate(mime_type: str | None, size_bytes: int, max_size_mb: float) -> ValidationOutcome:
    """Classify a media file.

    The type check runs first; the size check only applies to supported
    types. Pure function: the same inputs always give the same outcome.
    """
    top_level, _, subtype = (mime_type or "").partition("/")
    bucket = _BUCKET_BY_TOP_LEVEL.get(top_level.lower())
    # drop parameters such as "video/mp4; codecs=avc1"
    extension = subtype.split(";", 1)[0].strip().lower()
    if bucket is None or not extension:
        return Rejected(RejectReason.UNSUPPORTED_TYPE)

    size_mb = size_in_mb(size_bytes)
    if size_mb > max_size_mb:
        return Rejected(RejectReason.TOO_LARGE, size_mb=size_mb)

    return Accepted(bucket=bucket, extension=extension, size_mb=size_mb)
