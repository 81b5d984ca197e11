"""Tests for image URL rewriting."""

from __future__ import annotations

from frontpage.images import PLACEHOLDER_IMAGE, canonical_image_url, canonical_image_urls

BASE = "https://cdn.example.com/"


def test_rewrites_host_before_image_path():
    raw = "https://storage.googleapis.com/bucket/image/2024/05/portada.jpg"
    assert canonical_image_url(raw, BASE) == "https://cdn.example.com/image/2024/05/portada.jpg"


def test_reference_without_marker_is_untouched():
    raw = "https://other.example.com/banner.png"
    assert canonical_image_url(raw, BASE) == raw


def test_empty_reference_gets_placeholder():
    assert canonical_image_url("", BASE) == PLACEHOLDER_IMAGE


def test_no_base_url_leaves_reference():
    raw = "https://storage.example.com/image/a.jpg"
    assert canonical_image_url(raw, "") == raw


def test_sequences_are_rewritten_item_by_item():
    refs = ("https://a.example.com/image/1.jpg", "")
    assert canonical_image_urls(refs, BASE) == [
        "https://cdn.example.com/image/1.jpg",
        PLACEHOLDER_IMAGE,
    ]
    assert canonical_image_urls("/image/2.jpg", BASE) == "https://cdn.example.com/image/2.jpg"
