"""
MIME type lookup for the static fallback.

A single-page application build usually ships HTML, JS bundles, CSS,
source maps, fonts, images and a manifest. The table below covers those;
anything else is served as ``application/octet-stream`` so the browser
downloads it instead of guessing.
"""

from pathlib import Path
from typing import Optional, Union


MIME_TYPES = {
    # Documents and bundles
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".map": "application/json",
    ".json": "application/json",
    ".webmanifest": "application/manifest+json",
    ".txt": "text/plain",
    ".xml": "application/xml",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # Misc
    ".wasm": "application/wasm",
    ".pdf": "application/pdf",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

_TEXT_LIKE = {
    "application/json",
    "application/manifest+json",
    "application/xml",
    "image/svg+xml",
}


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """Look up a MIME type by file extension (case-insensitive)."""
    extension = Path(path).suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXT_LIKE


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """
    Full Content-Type header value for a file.

    Text types get a charset parameter:
        get_content_type("index.html")  → "text/html; charset=utf-8"
        get_content_type("logo.png")    → "image/png"
    """
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
