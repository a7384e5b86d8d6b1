"""Streaming response bodies to disk.

Chunks are written to a uniquely named temporary sibling file which is
renamed over the target once the stream is exhausted, so readers never see
a partial file and concurrent writers to one target never share a temporary
file. Writes run in a worker thread. The file handle is closed on every path.
"""

import asyncio
import hashlib
import uuid
from collections.abc import AsyncIterable, Iterable
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field


logger = structlog.get_logger()


class WrittenFile(BaseModel):
    """A file produced by ``pipe_to_file``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(min_length=1)
    bytes_written: int = Field(ge=0)
    sha256: str


async def pipe_to_file(
    chunks: AsyncIterable[bytes] | Iterable[bytes], path: str | Path
) -> WrittenFile:
    """Write a byte stream to ``path``.

    Args:
        chunks: Async or sync iterable of byte chunks.
        path: Destination file; parent directories are created.

    Returns:
        Description of the written file.

    Raises:
        OSError: If the file cannot be written. The temporary file is
            removed and the handle closed before the error propagates.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_name(f"{target.name}.{uuid.uuid4().hex}.tmp")
    digest = hashlib.sha256()
    written = 0
    log = logger.bind(component="files", path=str(target))

    try:
        with temp_path.open("wb") as handle:
            if isinstance(chunks, AsyncIterable):
                async for chunk in chunks:
                    written += await asyncio.to_thread(handle.write, chunk)
                    digest.update(chunk)
            else:
                for chunk in chunks:
                    written += await asyncio.to_thread(handle.write, chunk)
                    digest.update(chunk)
        await asyncio.to_thread(temp_path.replace, target)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        log.warning("file_write_failed", bytes=written)
        raise

    log.debug("file_written", bytes=written, sha256=digest.hexdigest()[:12])
    return WrittenFile(path=str(target), bytes_written=written, sha256=digest.hexdigest())


async def stream_to_file(response: Any, path: str | Path) -> WrittenFile:
    """Write a response body to ``path``.

    Args:
        response: ``ResponseData`` or anything with an async ``body``
            iterator, ``aiter_bytes()`` or ``iter_bytes()``.
        path: Destination file.

    Returns:
        Description of the written file.
    """
    body = getattr(response, "body", None)
    if isinstance(body, (AsyncIterable, Iterable)) and not isinstance(body, (str, bytes)):
        return await pipe_to_file(body, path)
    if isinstance(body, bytes):
        return await pipe_to_file([body], path)
    aiter_bytes = getattr(response, "aiter_bytes", None)
    if callable(aiter_bytes):
        return await pipe_to_file(aiter_bytes(), path)
    iter_bytes = getattr(response, "iter_bytes", None)
    if callable(iter_bytes):
        return await pipe_to_file(iter_bytes(), path)
    msg = f"Cannot stream a body from {type(response).__name__}"
    raise TypeError(msg)
