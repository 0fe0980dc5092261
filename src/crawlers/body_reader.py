"""Size-capped reading of streamed response bodies."""

import logging
import zlib
from typing import Iterator, Optional

import httpx

from .errors import PayloadTooLargeError, UpstreamError

logger = logging.getLogger(__name__)

# Largest decompressed piece produced from one inflate step
DECODE_CHUNK_SIZE = 64 * 1024

# content-encoding -> zlib wbits
_WBITS = {
    "gzip": 16 + zlib.MAX_WBITS,
    "x-gzip": 16 + zlib.MAX_WBITS,
    "deflate": zlib.MAX_WBITS,
}


def _declared_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _content_encoding(response: httpx.Response) -> str:
    return response.headers.get("content-encoding", "identity").strip().lower() or "identity"


def _inflate(decoder, data: bytes) -> Iterator[bytes]:
    """Yield the output of *data* in pieces of at most DECODE_CHUNK_SIZE."""
    while True:
        piece = decoder.decompress(data, DECODE_CHUNK_SIZE)
        if piece:
            yield piece
        data = decoder.unconsumed_tail
        if not data and len(piece) < DECODE_CHUNK_SIZE:
            return


async def read_capped(response: httpx.Response, max_bytes: int) -> bytes:
    """
    Read a streamed response body, never holding more than *max_bytes*.

    A declared Content-Length over the cap is rejected before reading. The
    header is only a shortcut: the running total is checked on every chunk
    and the stream is closed as soon as it goes over.

    Compressed bodies are read raw and inflated in bounded steps, so the
    cap applies to the decoded size without ever expanding a whole chunk.

    Args:
        response: Response opened with ``stream=True``
        max_bytes: Maximum number of (decoded) body bytes to accept

    Returns:
        The body bytes

    Raises:
        PayloadTooLargeError: If the declared or actual size exceeds the cap
        UpstreamError: If the body uses an unsupported or corrupt encoding
    """
    declared = _declared_length(response)
    if declared is not None and declared > max_bytes:
        await response.aclose()
        raise PayloadTooLargeError(max_bytes, reason=f"declared length {declared}")

    encoding = _content_encoding(response)
    if encoding != "identity" and encoding not in _WBITS:
        await response.aclose()
        raise UpstreamError(None, reason=f"unsupported content-encoding {encoding!r}")
    decoder = zlib.decompressobj(_WBITS[encoding]) if encoding in _WBITS else None

    chunks: list[bytes] = []
    total = 0

    async def keep(piece: bytes):
        nonlocal total
        total += len(piece)
        if total > max_bytes:
            await response.aclose()
            logger.warning(f"Body exceeded {max_bytes} bytes, stream closed")
            raise PayloadTooLargeError(max_bytes, reason=f"streamed past {max_bytes} bytes")
        chunks.append(piece)

    try:
        async for raw in response.aiter_raw():
            if decoder is None:
                await keep(raw)
                continue
            for piece in _inflate(decoder, raw):
                await keep(piece)
        if decoder is not None:
            await keep(decoder.flush())
    except zlib.error as e:
        await response.aclose()
        raise UpstreamError(None, reason=f"corrupt {encoding} body: {e}")

    return b"".join(chunks)


def decode_body(response: httpx.Response, body: bytes) -> str:
    """Decode *body* using the response charset, falling back to UTF-8."""
    encoding = response.charset_encoding or "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")
