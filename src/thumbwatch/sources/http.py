"""HTTP pixel provider; source keys are image URLs."""

from typing import Iterable, Optional
from urllib.parse import urlsplit

import httpx

from .provider import FetchDenied, PixelBuffer, PixelProvider, decode_image_bytes
from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
MAX_REDIRECTS = 5


class HttpPixelProvider(PixelProvider):
    """
    Downloads images with an httpx.AsyncClient.

    Only http(s) URLs are fetched; inline data: URLs are refused. If
    allowed_hosts is given, any other host is refused before a request is made.
    Redirects are followed by hand so that every hop passes the same checks.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        allowed_hosts: Optional[Iterable[str]] = None,
        max_bytes: int = DEFAULT_MAX_BYTES,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.allowed_hosts = {host.lower() for host in allowed_hosts} if allowed_hosts is not None else None
        self.max_bytes = max_bytes

    def check_allowed(self, url: str) -> None:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https"):
            raise FetchDenied(f"Unsupported scheme {parts.scheme!r} for {url[:60]}")
        host = (parts.hostname or "").lower()
        if not host:
            raise FetchDenied(f"No host in {url[:60]}")
        if self.allowed_hosts is not None and host not in self.allowed_hosts:
            raise FetchDenied(f"Host {host} is not allowed")

    async def _download(self, url: str) -> bytes:
        for _ in range(MAX_REDIRECTS + 1):
            self.check_allowed(url)
            try:
                async with self._client.stream("GET", url, follow_redirects=False) as response:
                    if response.is_redirect:
                        url = str(response.url.join(response.headers["location"]))
                        logger.debug(f"Redirected to {url[:60]}")
                        continue
                    response.raise_for_status()
                    declared = response.headers.get("content-length")
                    if declared is not None and declared.isdigit() and int(declared) > self.max_bytes:
                        raise FetchDenied(f"{url[:60]} declares {declared} bytes, limit is {self.max_bytes}")

                    body = bytearray()
                    async for chunk in response.aiter_bytes():
                        body.extend(chunk)
                        if len(body) > self.max_bytes:
                            raise FetchDenied(f"{url[:60]} exceeds {self.max_bytes} bytes")
                    return bytes(body)
            except httpx.HTTPStatusError as exc:
                raise FetchDenied(f"HTTP {exc.response.status_code} for {url[:60]}") from exc
            except httpx.HTTPError as exc:
                raise FetchDenied(f"Request failed for {url[:60]}: {exc}") from exc
        raise FetchDenied(f"More than {MAX_REDIRECTS} redirects for {url[:60]}")

    async def fetch_pixels(self, source_key: str) -> PixelBuffer:
        data = await self._download(source_key)
        logger.debug(f"Downloaded {len(data)} bytes from {source_key[:60]}")
        return decode_image_bytes(data, source_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpPixelProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
