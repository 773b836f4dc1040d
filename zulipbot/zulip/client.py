"""
Async Zulip REST client.

Wraps the subset of the Zulip API the bridge needs:
- Event queue registration and long-polling
- Sending messages and typing notifications
- File uploads
- Stream administration and reactions
"""

import asyncio
import contextlib
import json
from typing import Any

import httpx
from loguru import logger

from zulipbot.zulip.models import (
    QueueRegistration,
    ZulipEvent,
    ZulipProfile,
    ZulipStream,
)


# Zulip holds a long-poll open for up to ~90s; the read timeout must outlast it.
POLL_TIMEOUT_SECONDS = 120.0
REQUEST_TIMEOUT_SECONDS = 30.0


class ZulipApiError(RuntimeError):
    """A non-success response from the Zulip server."""

    def __init__(self, status_code: int, msg: str, code: str = ""):
        self.status_code = status_code
        self.msg = msg
        self.code = code
        super().__init__(f"Zulip API {status_code}: {msg or 'unknown error'}")


class PollAborted(Exception):
    """Raised when the abort signal fires while a request (poll or registration) is outstanding."""


def normalize_server_url(raw: str | None) -> str:
    """Trim whitespace and trailing slashes from a server URL."""
    return (raw or "").strip().rstrip("/")


class ZulipClient:
    """
    Minimal async client for a single Zulip bot account.

    Authenticates every request with HTTP Basic auth (bot email + API key).
    """

    def __init__(
        self,
        server_url: str,
        bot_email: str,
        api_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.server_url = normalize_server_url(server_url)
        if not self.server_url:
            raise ValueError("Zulip server_url is required")
        self.bot_email = bot_email.strip()
        self.api_key = api_key.strip()
        if not self.bot_email or not self.api_key:
            raise ValueError("Zulip bot_email and api_key are required")

        self._http = httpx.AsyncClient(
            base_url=f"{self.server_url}/api/v1",
            auth=(self.bot_email, self.api_key),
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "ZulipClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        timeout: float | httpx.Timeout | None = None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if params is not None:
            kwargs["params"] = params
        if data is not None:
            kwargs["data"] = data
        if files is not None:
            kwargs["files"] = files
        if timeout is not None:
            kwargs["timeout"] = timeout

        response = await self._http.request(method, path, **kwargs)
        return _parse_response(response)

    # ------------------------------------------------------------------
    # Identity and events
    # ------------------------------------------------------------------

    async def get_own_profile(self) -> ZulipProfile:
        """Fetch the bot's own user record (/users/me)."""
        data = await self._request("GET", "/users/me")
        return ZulipProfile.from_dict(data)

    async def register_event_queue(self, abort: asyncio.Event | None = None) -> QueueRegistration:
        """
        Register a queue that receives message events with raw markdown.

        Raises:
            PollAborted: The abort event fired before the server answered.
        """
        request = self._request(
            "POST",
            "/register",
            data={
                "event_types": json.dumps(["message"]),
                "apply_markdown": "false",
            },
        )
        data = await _with_abort(request, abort)
        return QueueRegistration.from_dict(data)

    async def poll_events(
        self,
        queue_id: str,
        last_event_id: int,
        abort: asyncio.Event | None = None,
    ) -> list[ZulipEvent]:
        """
        Long-poll the event queue.

        Args:
            queue_id: Queue returned by register_event_queue.
            last_event_id: Highest event id already processed.
            abort: When set, the outstanding request is cancelled.

        Returns:
            Events in server order (possibly empty).

        Raises:
            PollAborted: The abort event fired before the server answered.
            ZulipApiError: The server rejected the poll (e.g. expired queue).
        """
        request = self._request(
            "GET",
            "/events",
            params={"queue_id": queue_id, "last_event_id": str(last_event_id)},
            timeout=httpx.Timeout(POLL_TIMEOUT_SECONDS, connect=10.0),
        )

        data = await _with_abort(request, abort)
        return [ZulipEvent.from_dict(e) for e in data.get("events") or []]

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(
        self,
        type: str,
        to: str | list[int],
        content: str,
        topic: str | None = None,
    ) -> int:
        """
        Send a message.

        Args:
            type: "stream" or "direct".
            to: Stream name, or a list of user ids (or its JSON encoding).
            content: Markdown body.
            topic: Topic for stream messages.

        Returns:
            Id of the created message.
        """
        body: dict[str, Any] = {
            "type": type,
            "to": json.dumps(to) if isinstance(to, list) else to,
            "content": content,
        }
        if topic:
            body["topic"] = topic
        data = await self._request("POST", "/messages", data=body)
        return int(data.get("id", 0))

    async def send_typing(
        self,
        op: str,
        to: list[int] | None = None,
        stream_id: int | None = None,
        topic: str | None = None,
    ) -> None:
        """Send a typing start/stop notification to a DM peer or a stream topic."""
        body: dict[str, Any] = {"op": op}
        if stream_id is not None:
            body["type"] = "stream"
            body["stream_id"] = str(stream_id)
            if topic:
                body["topic"] = topic
        else:
            body["type"] = "direct"
            body["to"] = json.dumps(to or [])
        await self._request("POST", "/typing", data=body)

    async def upload_file(
        self,
        data: bytes,
        filename: str,
        content_type: str | None = None,
    ) -> str:
        """Upload a file and return its server-relative URI."""
        result = await self._request(
            "POST",
            "/user_uploads",
            files={"file": (filename, data, content_type or "application/octet-stream")},
        )
        return result.get("uri") or result.get("url", "")

    async def add_reaction(self, message_id: int, emoji_name: str) -> None:
        await self._request(
            "POST",
            f"/messages/{message_id}/reactions",
            data={"emoji_name": emoji_name},
        )

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    async def list_streams(self, include_public: bool = True) -> list[ZulipStream]:
        params = {"include_public": "true"} if include_public else {}
        data = await self._request("GET", "/streams", params=params)
        return [ZulipStream.from_dict(s) for s in data.get("streams") or []]

    async def list_subscriptions(self) -> list[ZulipStream]:
        data = await self._request("GET", "/users/me/subscriptions")
        return [ZulipStream.from_dict(s) for s in data.get("subscriptions") or []]

    async def subscribe(
        self,
        name: str,
        description: str | None = None,
        is_private: bool = False,
    ) -> dict[str, Any]:
        """Subscribe the bot to a stream, creating it if needed."""
        sub: dict[str, str] = {"name": name}
        if description:
            sub["description"] = description
        body: dict[str, Any] = {"subscriptions": json.dumps([sub])}
        if is_private:
            body["invite_only"] = "true"
        data = await self._request("POST", "/users/me/subscriptions", data=body)
        return {
            "subscribed": data.get("subscribed", {}),
            "already_subscribed": data.get("already_subscribed", {}),
        }

    async def unsubscribe(self, name: str) -> None:
        await self._request(
            "DELETE",
            "/users/me/subscriptions",
            data={"subscriptions": json.dumps([name])},
        )

    async def get_stream_topics(self, stream_id: int) -> list[dict[str, Any]]:
        data = await self._request("GET", f"/users/me/{stream_id}/topics")
        return list(data.get("topics") or [])

    async def update_stream(
        self,
        stream_id: int,
        description: str | None = None,
        new_name: str | None = None,
        is_private: bool | None = None,
    ) -> None:
        body: dict[str, Any] = {}
        if description is not None:
            body["description"] = description
        if new_name is not None:
            body["new_name"] = new_name
        if is_private is not None:
            body["is_private"] = "true" if is_private else "false"
        await self._request("PATCH", f"/streams/{stream_id}", data=body)

    async def delete_stream(self, stream_id: int) -> None:
        await self._request("DELETE", f"/streams/{stream_id}")

    async def get_stream_members(self, stream_id: int) -> list[int]:
        data = await self._request("GET", f"/streams/{stream_id}/members")
        return [int(s) for s in data.get("subscribers") or []]


def _parse_response(response: httpx.Response) -> dict[str, Any]:
    """Decode a Zulip JSON response, raising ZulipApiError on failure."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if not response.is_success:
        if isinstance(payload, dict):
            msg = str(payload.get("msg") or json.dumps(payload))
            code = str(payload.get("code") or "")
        else:
            msg, code = response.text[:500], ""
        raise ZulipApiError(response.status_code, msg, code)

    if not isinstance(payload, dict):
        return {}
    if payload.get("result") == "error":
        raise ZulipApiError(
            response.status_code,
            str(payload.get("msg") or "request failed"),
            str(payload.get("code") or ""),
        )
    return payload


async def _with_abort(request: Any, abort: asyncio.Event | None) -> dict[str, Any]:
    if abort is None:
        return await request
    if abort.is_set():
        request.close()
        raise PollAborted()
    return await _race_abort(request, abort)


async def _race_abort(request: Any, abort: asyncio.Event) -> dict[str, Any]:
    """Await a request unless the abort event fires first."""
    request_task = asyncio.ensure_future(request)
    abort_task = asyncio.ensure_future(abort.wait())
    try:
        done, _ = await asyncio.wait(
            {request_task, abort_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        request_task.cancel()
        raise
    finally:
        abort_task.cancel()

    if request_task in done:
        return request_task.result()

    request_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await request_task
    logger.debug("Zulip request aborted")
    raise PollAborted()
