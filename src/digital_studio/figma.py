"""Figma design source: turns a file URL into one PNG attachment per frame."""

import logging
import re
from typing import Any

import httpx

from .exceptions import UpstreamDesignFetchError
from .models import Attachment

logger = logging.getLogger(__name__)

_FILE_KEY_PATTERN = re.compile(r"/(?:file|design|proto)/([a-zA-Z0-9\-_]+)")


def extract_file_key(figma_url: str) -> str:
    """Extract the file key from a Figma URL.

    Raises:
        UpstreamDesignFetchError: If the URL has no file key.
    """
    match = _FILE_KEY_PATTERN.search(figma_url or "")
    if not match:
        raise UpstreamDesignFetchError("Invalid Figma URL format. Could not extract the file key.", reason="invalid_reference")
    return match.group(1)


def find_frames(node: dict[str, Any]) -> list[dict[str, Any]]:
    """All FRAME nodes below ``node`` (including itself), depth first in document order."""
    frames = [node] if node.get("type") == "FRAME" else []
    for child in node.get("children") or []:
        frames.extend(find_frames(child))
    return frames


class FigmaDesignSource:
    """Fetches frame renders from the Figma REST API."""

    def __init__(
        self,
        api_token: str | None,
        base_url: str = "https://api.figma.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, figma_url: str) -> list[Attachment]:
        """Return one ``<frame name>.png`` attachment per frame on the first canvas.

        Raises:
            UpstreamDesignFetchError: On a missing token, bad URL, missing file,
                denied access, or a file without frames.
        """
        if not self.api_token or len(self.api_token) < 10:
            raise UpstreamDesignFetchError("Figma API token is not configured. Set FIGMA_API_TOKEN.", reason="not_configured")

        file_key = extract_file_key(figma_url)
        headers = {"X-Figma-Token": self.api_token}

        async with httpx.AsyncClient(timeout=self.timeout, headers=headers, transport=self._transport) as client:
            logger.info(f"Fetching Figma file with key: {file_key}")
            document = (await self._get_json(client, f"{self.base_url}/v1/files/{file_key}"))["document"]

            canvas = next((child for child in document.get("children", []) if child.get("type") == "CANVAS"), None)
            if canvas is None:
                raise UpstreamDesignFetchError("No canvas found on the first page of the Figma file.", reason="no_frames")

            frames = find_frames(canvas)
            if not frames:
                raise UpstreamDesignFetchError(
                    "No frames found on the first page of the Figma file. Ensure your designs are within frames.", reason="no_frames"
                )

            logger.info(f"Found {len(frames)} frames. Fetching images...")
            ids = ",".join(frame["id"] for frame in frames)
            images = await self._get_json(client, f"{self.base_url}/v1/images/{file_key}", params={"ids": ids, "format": "png"})
            if images.get("err"):
                raise UpstreamDesignFetchError(f"Figma API returned an error: {images['err']}", reason="upstream_error")

            image_urls = images.get("images") or {}
            attachments = []
            for frame in frames:
                url = image_urls.get(frame["id"])
                if not url:
                    logger.warning(f"Figma did not render frame '{frame.get('name')}', skipping")
                    continue
                attachments.append(Attachment(name=f"{frame.get('name', frame['id'])}.png", data=await self._download(client, url)))

        if not attachments:
            raise UpstreamDesignFetchError("Figma did not render any frames.", reason="no_frames")
        return attachments

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        try:
            response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamDesignFetchError(f"Failed to reach the Figma API: {e}", reason="upstream_error") from e
        self._raise_for_status(response)
        return response.json()

    async def _download(self, client: httpx.AsyncClient, url: str) -> bytes:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise UpstreamDesignFetchError(f"Failed to download a Figma render: {e}", reason="upstream_error") from e
        self._raise_for_status(response)
        return response.content

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code == 404:
            logger.error("Figma API error: File not found. It may be private or the URL is incorrect.")
            raise UpstreamDesignFetchError(
                "Figma file not found. Check the URL and ensure you have view permissions.", reason="not_found", status_code=404
            )
        if response.status_code == 403:
            logger.error("Figma API error: Forbidden. Check your Figma API token.")
            raise UpstreamDesignFetchError("Access to the Figma API was denied. Check FIGMA_API_TOKEN.", reason="access_denied", status_code=403)
        if response.is_error:
            raise UpstreamDesignFetchError(
                f"Figma API request failed with status {response.status_code}", reason="upstream_error", status_code=response.status_code
            )
