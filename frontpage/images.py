"""Image reference rewriting for the delivery CDN."""

from __future__ import annotations

PLACEHOLDER_IMAGE = "/placeholder.svg?height=400&width=800"
IMAGE_PATH_MARKER = "/image"


def canonical_image_url(raw: str, base_url: str) -> str:
    """Swap everything before ``/image`` for the delivery base URL.

    References without the marker are returned untouched, an empty
    reference maps to the placeholder.
    """
    if not raw:
        return PLACEHOLDER_IMAGE
    if not base_url:
        return raw

    idx = raw.find(IMAGE_PATH_MARKER)
    if idx == -1:
        return raw
    return base_url.rstrip("/") + raw[idx:]


def canonical_image_urls(refs, base_url: str):
    """Apply canonical_image_url to a single reference or a sequence of them."""
    if isinstance(refs, (list, tuple)):
        return [canonical_image_url(r, base_url) for r in refs]
    return canonical_image_url(refs, base_url)
