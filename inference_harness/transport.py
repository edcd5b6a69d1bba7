"""
Transport

Retrieves model files and ark frames from URLs or the local filesystem.
At most one tracked request is outstanding per Fetcher; starting a new
tracked request abandons the previous one.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import unquote, urlparse

import httpx

from .errors import FetchError, RequestSupersededError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int]], None]


def is_remote(url: str) -> bool:
    return url.startswith(("http://", "https://"))


class Fetcher:
    """
    Byte retrieval with request supersession.

    Usage:
        fetcher = Fetcher(timeout=30.0)
        data = await fetcher.fetch("https://example.com/model.onnx")
    """

    def __init__(self,
                 timeout: float = 30.0,
                 progress: Optional[ProgressCallback] = None,
                 client_kwargs: Optional[Dict[str, Any]] = None):
        self.timeout = timeout
        self.progress = progress
        self._client_kwargs: Dict[str, Any] = dict(client_kwargs or {})
        self._outstanding: Optional[asyncio.Task] = None

    @property
    def outstanding(self) -> Optional[asyncio.Task]:
        return self._outstanding

    def cancel_outstanding(self) -> None:
        """Abort the tracked request, if any"""
        task = self._outstanding
        self._outstanding = None
        if task is not None and not task.done():
            logger.warning("Abandoning outstanding request")
            task.cancel()

    async def fetch(self,
                    url: str,
                    binary: bool = True,
                    progress: bool = False) -> Union[bytes, str]:
        """
        Retrieve a resource as the tracked request.

        Any previous tracked request is cancelled first.

        Args:
            url: http(s) URL, file:// URL or local path
            binary: Return bytes when True, decoded UTF-8 text otherwise
            progress: Report progress through the configured callback

        Returns:
            Resource contents

        Raises:
            FetchError: Retrieval failed
            RequestSupersededError: A newer tracked request replaced this one
        """
        self.cancel_outstanding()

        task = asyncio.ensure_future(self._retrieve(url, binary, progress))
        self._outstanding = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._outstanding is not task and task.cancelled():
                raise RequestSupersededError(f"Request for {url} was superseded") from None
            raise
        finally:
            if self._outstanding is task:
                self._outstanding = None

    async def fetch_untracked(self, url: str, binary: bool = True) -> Union[bytes, str]:
        """Retrieve a resource without affecting the tracked request"""
        return await self._retrieve(url, binary, False)

    async def _retrieve(self, url: str, binary: bool, progress: bool) -> Union[bytes, str]:
        if is_remote(url):
            data = await self._retrieve_http(url, progress)
        else:
            data = await self._retrieve_file(url)

        if binary:
            return data
        return data.decode('utf-8')

    async def _retrieve_http(self, url: str, progress: bool) -> bytes:
        callback = self.progress if progress else None

        try:
            async with httpx.AsyncClient(timeout=self.timeout, **self._client_kwargs) as client:
                async with client.stream("GET", url, follow_redirects=True) as resp:
                    if resp.status_code != 200:
                        raise FetchError(url, resp.status_code)

                    total = resp.headers.get("content-length")
                    total = int(total) if total else None
                    chunks = []
                    loaded = 0
                    async for chunk in resp.aiter_bytes(chunk_size=8192):
                        chunks.append(chunk)
                        loaded += len(chunk)
                        if callback is not None:
                            callback(loaded, total)
        except httpx.HTTPError as e:
            raise FetchError(url, None, str(e)) from e

        return b"".join(chunks)

    async def _retrieve_file(self, url: str) -> bytes:
        if url.startswith("file://"):
            path = Path(unquote(urlparse(url).path))
        else:
            path = Path(url)

        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise FetchError(url, 404, "file not found") from e
        except OSError as e:
            raise FetchError(url, None, str(e)) from e
