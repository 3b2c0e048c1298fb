"""
Media Host Module
Client for the remote image host: hosted-URL check, upload with retry, delete.
"""

import re
from typing import Optional

import httpx
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .exceptions import MediaDeleteError, MediaUploadError

DEFAULT_HOST_DOMAIN = 'res.cloudinary.com'
_VERSION_SEGMENT = re.compile(r'^v\d+$')


def extract_public_id(url: str, host_domain: str = DEFAULT_HOST_DOMAIN) -> Optional[str]:
    """
    Extract the asset id from a hosted image URL.

    ``https://res.cloudinary.com/demo/image/upload/v1712/products/frame.jpg``
    gives ``products/frame``.

    Args:
        url: Hosted image URL
        host_domain: Domain of the media host

    Returns:
        The public id, or None when the URL is not a hosted upload URL
    """
    if host_domain not in url:
        return None
    parts = url.split('/')
    if 'upload' not in parts:
        return None
    path = parts[parts.index('upload') + 1:]
    if path and _VERSION_SEGMENT.match(path[0]):
        path = path[1:]
    public_id = '/'.join(path)
    if '.' in public_id:
        public_id = public_id[:public_id.rindex('.')]
    return public_id or None


def _log_retry(retry_state) -> None:
    logger.warning(
        f"Image upload attempt {retry_state.attempt_number} failed: "
        f"{retry_state.outcome.exception()}, retrying"
    )


class MediaHostClient:
    """Upload images to, and delete them from, the remote media host."""

    def __init__(
        self,
        upload_url: str,
        delete_url: Optional[str] = None,
        host_domain: str = DEFAULT_HOST_DOMAIN,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the media client.

        Args:
            upload_url: Endpoint accepting ``{"imageUrl": ...}``
            delete_url: Endpoint accepting ``{"imageUrl", "publicId"}`` deletions
            host_domain: Domain that marks a URL as already hosted
            retry_attempts: Total upload attempts per image
            retry_delay: Fixed wait between attempts, in seconds
            timeout: HTTP timeout in seconds
            client: Optional pre-built HTTP client
        """
        self.upload_url = upload_url
        self.delete_url = delete_url
        self.host_domain = host_domain
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def is_hosted(self, url: str) -> bool:
        """Check whether ``url`` already points at the media host."""
        return self.host_domain in url

    async def upload(self, source_url: str) -> str:
        """
        Make sure an image lives on the media host.

        Already hosted URLs are returned unchanged without any request.

        Args:
            source_url: Image URL referenced by the CSV

        Returns:
            Hosted URL of the image

        Raises:
            MediaUploadError: once every attempt has failed
        """
        if self.is_hosted(source_url):
            logger.debug(f"Image already hosted, skipping upload: {source_url}")
            return source_url

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(MediaUploadError),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                hosted_url = await self._upload_once(source_url)
        logger.info(f"Uploaded image {source_url} -> {hosted_url}")
        return hosted_url

    async def _upload_once(self, source_url: str) -> str:
        try:
            response = await self.client.post(self.upload_url, json={'imageUrl': source_url})
        except httpx.HTTPError as e:
            raise MediaUploadError(source_url, str(e)) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            raise MediaUploadError(source_url, f"unexpected upload response: {str(payload)[:100]}")
        if response.status_code >= 400 or payload.get('error'):
            message = payload.get('error') or f"HTTP {response.status_code}"
            raise MediaUploadError(source_url, str(message))
        if not payload.get('url'):
            raise MediaUploadError(source_url, 'upload response carried no url')
        return payload['url']

    async def delete(self, hosted_url: str) -> None:
        """
        Remove an asset from the media host.

        An asset the host no longer knows counts as deleted.

        Args:
            hosted_url: Hosted URL of the asset

        Raises:
            MediaDeleteError: if the URL is not hosted or the host refuses
        """
        if not self.delete_url:
            raise MediaDeleteError('No media delete endpoint configured')
        public_id = extract_public_id(hosted_url, self.host_domain)
        if not public_id:
            raise MediaDeleteError(f"Could not determine public id for {hosted_url}")

        try:
            response = await self.client.request(
                'DELETE',
                self.delete_url,
                json={'imageUrl': hosted_url, 'publicId': public_id},
            )
        except httpx.HTTPError as e:
            raise MediaDeleteError(f"Failed to delete {public_id}: {e}") from e

        if response.status_code >= 400:
            raise MediaDeleteError(f"Failed to delete {public_id}: HTTP {response.status_code}")
        logger.info(f"Deleted hosted image {public_id}")
