"""Detect which loader understands an uploaded file."""

from __future__ import annotations

from typing import Optional

_EXTENSIONS = {
    ".pdf": "pdf",
    ".epub": "epub",
    ".txt": "txt",
}

_MIMETYPES = {
    "application/pdf": "pdf",
    "application/epub+zip": "epub",
    "text/plain": "txt",
}


def detect_file_type(filename: Optional[str], mimetype: Optional[str] = None) -> Optional[str]:
    """Return ``"pdf"``, ``"epub"`` or ``"txt"``, or None when unsupported.

    The file extension wins over the MIME type.
    """

    lower_name = (filename or "").lower()
    for extension, kind in _EXTENSIONS.items():
        if lower_name.endswith(extension):
            return kind
    if mimetype:
        return _MIMETYPES.get(mimetype.split(";", 1)[0].strip().lower())
    return None


__all__ = ["detect_file_type"]
