"""Outbound sends to a destination address, with optional media attachment."""

import mimetypes
import re
import time
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlparse

import httpx
from loguru import logger

from zulipbot.zulip.client import ZulipClient
from zulipbot.zulip.targets import parse_target


_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


class ZulipSender:
    """
    Sends text (and optionally one media item) to a Zulip target address.

    Media is uploaded to the server and linked in the message body. If the
    upload fails, an http(s) URL is included as plain text instead.
    """

    def __init__(
        self,
        client: ZulipClient,
        account_id: str = "default",
        status_sink: Callable[[dict[str, Any]], None] | None = None,
    ):
        self.client = client
        self.account_id = account_id
        self._status_sink = status_sink

    async def send(self, to: str, text: str, media_url: str | None = None) -> str:
        """
        Send a message.

        Args:
            to: Destination address (see zulipbot.zulip.targets).
            text: Markdown body.
            media_url: Optional http(s) URL or local file path to attach.

        Returns:
            Id of the created message, as a string.

        Raises:
            ValueError: The target is empty, or there is nothing to send.
        """
        target = parse_target(to)
        content = (text or "").strip()

        media_url = (media_url or "").strip()
        if media_url:
            content = await self._attach_media(content, media_url)

        if not content:
            raise ValueError("Zulip message is empty")

        message_id = await self.client.send_message(
            type=target.type,
            to=target.to,
            content=content,
            topic=target.topic,
        )
        logger.debug(f"zulip[{self.account_id}] sent message {message_id} to {to}")
        if self._status_sink:
            self._status_sink({"last_outbound_at": int(time.time() * 1000)})
        return str(message_id)

    async def _attach_media(self, content: str, media_url: str) -> str:
        try:
            data, filename, content_type = await load_media(media_url)
            uri = await self.client.upload_file(data, filename, content_type)
            link = f"[{filename}]({uri})"
        except (httpx.HTTPError, OSError, RuntimeError) as e:
            logger.warning(f"zulip[{self.account_id}] media upload failed for {media_url}: {e}")
            if not _HTTP_URL.match(media_url):
                return content
            link = media_url
        return f"{content}\n{link}" if content else link


async def load_media(source: str) -> tuple[bytes, str, str | None]:
    """Fetch media bytes from a URL or local path, with a filename and MIME type."""
    if _HTTP_URL.match(source):
        async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as http:
            response = await http.get(source)
            response.raise_for_status()
        filename = Path(urlparse(source).path).name or "file"
        content_type = response.headers.get("content-type")
        return response.content, filename, content_type or mimetypes.guess_type(filename)[0]

    path = Path(source).expanduser()
    return path.read_bytes(), path.name, mimetypes.guess_type(path.name)[0]
