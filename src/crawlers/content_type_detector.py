"""
Decides whether a response is an HTML page worth reading.

Only the Content-Type header is consulted, so a non-HTML response can be
rejected before any of its body is read.
"""

from typing import Optional

HTML_MEDIA_TYPES = ("text/html", "application/xhtml+xml")


def media_type(content_type_header: Optional[str]) -> str:
    """'text/html; charset=utf-8' -> 'text/html'"""
    return (content_type_header or "").split(";", 1)[0].strip().lower()


def is_html_content_type(content_type_header: Optional[str]) -> bool:
    """True for text/html and application/xhtml+xml; a missing header is not HTML."""
    return media_type(content_type_header) in HTML_MEDIA_TYPES
