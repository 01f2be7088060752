"""Messaging transports between the operator and the agent.

The orchestrator only needs :class:`Messenger` (outbound text). Inbound
delivery is transport-specific: the console REPL reads stdin, the
Telegram transport long-polls ``getUpdates``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx
from rich.console import Console
from rich.markdown import Markdown

from devagent.agent.redaction import redact_secrets
from devagent.llm.models import ImageBlock

logger = logging.getLogger(__name__)

TG_API = "https://api.telegram.org/bot{token}/{method}"
TG_FILE_API = "https://api.telegram.org/file/bot{token}/{path}"
TG_MAX_LEN = 4096
PHOTO_UNAVAILABLE_NOTE = "[The attached photo could not be downloaded.]"

# Anything a single malformed update or failed download can raise.
_UPDATE_ERRORS = (httpx.HTTPError, ValueError, OSError, LookupError, TypeError, AttributeError)


@runtime_checkable
class Messenger(Protocol):
    """Outbound channel to the human operator."""

    async def send_message(self, text: str) -> None: ...


@runtime_checkable
class Screenshotter(Protocol):
    """Captures a screenshot and returns the saved image path."""

    async def capture(self, url: str | None = None, viewport: str = "desktop") -> str: ...


@dataclass
class Attachment:
    """A file the operator sent along with a message."""

    path: Path
    media_type: str = ""

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        if not self.media_type:
            guessed, _ = mimetypes.guess_type(self.path.name)
            self.media_type = guessed or "application/octet-stream"

    @property
    def is_image(self) -> bool:
        return self.media_type in ("image/jpeg", "image/png", "image/gif", "image/webp")

    def to_block(self) -> ImageBlock:
        """Load the attachment as an inline image block."""
        data = base64.standard_b64encode(self.path.read_bytes()).decode("ascii")
        return ImageBlock(base64_data=data, media_type=self.media_type)


@dataclass
class InboundMessage:
    """One message received from the operator."""

    chat_id: str
    text: str
    attachment: Attachment | None = None


def split_message(text: str, limit: int = TG_MAX_LEN) -> list[str]:
    """Split *text* into chunks of at most *limit* characters.

    Prefers newline boundaries; a single line longer than *limit* is
    hard-wrapped.
    """
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) + 1 > limit:
            if current:
                chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line
    if current:
        chunks.append(current)
    return chunks


class ConsoleMessenger:
    """Prints agent messages to a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    async def send_message(self, text: str) -> None:
        self._console.print(Markdown(redact_secrets(text)))


class TelegramMessenger:
    """Telegram Bot API transport over httpx.

    Args:
        bot_token: Bot API token.
        chat_id: The only chat this bot talks to. Messages from any other
            chat are ignored.
        download_dir: Where inbound photos are saved.
        http_client: Injected client, used by tests.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        download_dir: str | Path = "tmp",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = str(chat_id)
        self.download_dir = Path(download_dir)
        self._offset = 0
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=60, write=10, pool=10)
        )

    async def send_message(self, text: str) -> None:
        """Send redacted *text*, split to respect Telegram's size limit."""
        for chunk in split_message(redact_secrets(text) or "(empty)"):
            await self._tg("sendMessage", {"chat_id": self.chat_id, "text": chunk})

    async def poll(self, long_poll_timeout: int = 30) -> AsyncIterator[InboundMessage]:
        """Yield operator messages forever using long polling.

        A failure while handling one update is logged and that update is
        skipped; the loop itself only stops when the caller stops iterating.
        """
        while True:
            try:
                updates = await self._tg(
                    "getUpdates",
                    {"offset": self._offset, "timeout": long_poll_timeout},
                )
            except httpx.ReadTimeout:
                continue
            except httpx.HTTPError as exc:
                logger.error("Telegram polling error: %s", exc)
                await asyncio.sleep(5)
                continue
            for update in updates if isinstance(updates, list) else []:
                if not isinstance(update, dict) or "update_id" not in update:
                    logger.warning("Skipping malformed Telegram update: %r", update)
                    continue
                self._offset = update["update_id"] + 1
                try:
                    inbound = await self._parse_update(update)
                except _UPDATE_ERRORS as exc:
                    logger.error(
                        "Failed to handle Telegram update %s: %s", update["update_id"], exc
                    )
                    continue
                if inbound is not None:
                    yield inbound

    async def _parse_update(self, update: dict[str, Any]) -> InboundMessage | None:
        message = update.get("message")
        if not message:
            return None
        chat_id = str(message.get("chat", {}).get("id", ""))
        if chat_id != self.chat_id:
            logger.warning("Ignoring message from unknown chat %s", chat_id)
            return None

        text = (message.get("text") or message.get("caption") or "").strip()
        attachment = None
        photos = message.get("photo")
        if photos:
            # Telegram lists sizes ascending; the last one is the largest.
            try:
                attachment = await self._download(photos[-1]["file_id"], "image/jpeg")
            except (httpx.HTTPError, OSError) as exc:
                logger.error("Could not download Telegram photo: %s", exc)
                text = f"{text}\n\n{PHOTO_UNAVAILABLE_NOTE}".strip()
        if not text and attachment is None:
            return None
        return InboundMessage(chat_id=chat_id, text=text, attachment=attachment)

    async def _download(self, file_id: str, media_type: str) -> Attachment | None:
        info = await self._tg("getFile", {"file_id": file_id})
        file_path = info.get("file_path") if isinstance(info, dict) else None
        if not file_path:
            logger.warning("Telegram getFile returned no path for %s", file_id)
            return None
        url = TG_FILE_API.format(token=self.bot_token, path=file_path)
        resp = await self._http.get(url)
        resp.raise_for_status()
        self.download_dir.mkdir(parents=True, exist_ok=True)
        target = self.download_dir / f"telegram_{Path(file_path).name}"
        await asyncio.to_thread(target.write_bytes, resp.content)
        return Attachment(path=target, media_type=media_type)

    async def _tg(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Call a Telegram Bot API method and return its ``result``.

        API-level failures, including a non-JSON body from a gateway,
        are logged and return an empty result.
        """
        url = TG_API.format(token=self.bot_token, method=method)
        empty: Any = [] if method == "getUpdates" else {}
        response = await self._http.post(url, json=params or {})
        try:
            data = response.json()
        except ValueError:
            logger.warning(
                "Telegram %s returned a non-JSON body (HTTP %d)", method, response.status_code
            )
            return empty
        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else data
            logger.warning("Telegram API error on %s: %s", method, description)
            return empty
        return data.get("result", empty)

    async def close(self) -> None:
        await self._http.aclose()
