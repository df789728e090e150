from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class MediaManifest:
    """Direct-download locations for one post, as reported by a lookup service."""

    is_photo_post: bool
    video_url: str | None = None
    image_urls: list[str] = field(default_factory=list)
    thumbnail_url: str | None = None
    avatar_url: str | None = None
