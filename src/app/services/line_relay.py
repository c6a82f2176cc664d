"""LINE Messaging API clients.

- LinePushClient:  POST https://api.line.me/v2/bot/message/push, Bearer channel access token.
  Used by the relay endpoint only.
- LineRelayClient: POST {relay}/api/line/push with {credential, destination, text}.
  Used by the scheduler and the test-send endpoint; never talks to LINE directly.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from app.models.line import RelayResult

logger = logging.getLogger(__name__)

LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"
# LINE rejects text messages longer than this
LINE_TEXT_LIMIT = 5000

GENERIC_SEND_ERROR = "LINEメッセージの送信に失敗しました"
MISSING_FIELDS_ERROR = "Channel access token, group ID and message are required"

TEST_MESSAGE_TEMPLATE = (
    "━━━━━━━━━━━━━━━━\n"
    "✅ テスト送信成功！\n"
    "━━━━━━━━━━━━━━━━\n\n"
    "4次元PMからのLINE通知が正常に設定されました。\n\n"
    "毎日指定された時刻に{members}の日報が自動送信されます。"
)


def truncate_text(text: str, limit: int = LINE_TEXT_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def _error_message(resp: httpx.Response, key: str) -> tuple[str, Optional[object]]:
    """Pull the error text out of a JSON error body, falling back to a generic one."""
    try:
        body = resp.json()
    except ValueError:
        return GENERIC_SEND_ERROR, None
    if isinstance(body, dict) and body.get(key):
        return str(body[key]), body
    return GENERIC_SEND_ERROR, body


class LinePushClient:
    """Pushes one text message to a LINE user, group or room."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def push_text(self, *, credential: str, destination: str, text: str) -> tuple[int, RelayResult]:
        """Return the upstream status code and the outcome."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential}",
        }
        payload = {
            "to": destination,
            "messages": [{"type": "text", "text": truncate_text(text)}],
        }
        async with httpx.AsyncClient(transport=self._transport) as client:
            resp = await client.post(
                LINE_PUSH_URL, headers=headers, json=payload, timeout=self._timeout
            )
        if resp.is_success:
            return resp.status_code, RelayResult(success=True, message="メッセージを送信しました")
        error, details = _error_message(resp, "message")
        logger.error("LINE push failed with %s: %s", resp.status_code, error)
        return resp.status_code, RelayResult(success=False, error=error, details=details)


class LineRelayClient:
    """Sends report text through the relay endpoint."""

    def __init__(
        self,
        endpoint_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._timeout = timeout
        self._transport = transport

    async def send(self, credential: str, destination: str, text: str) -> RelayResult:
        if not credential or not destination or not text:
            return RelayResult(success=False, error=MISSING_FIELDS_ERROR)

        payload = {"credential": credential, "destination": destination, "text": text}
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    self._endpoint_url, json=payload, timeout=self._timeout
                )
        except httpx.HTTPError as e:
            err_msg = str(e).strip() or type(e).__name__
            logger.error("Relay request failed: %s", err_msg)
            return RelayResult(success=False, error=err_msg)

        if not resp.is_success:
            error, _ = _error_message(resp, "error")
            return RelayResult(success=False, error=error)
        return RelayResult(success=True)

    async def send_test(self, credential: str, destination: str, members: list[str]) -> RelayResult:
        names = ", ".join(members) if members else "全メンバー"
        return await self.send(credential, destination, TEST_MESSAGE_TEMPLATE.format(members=names))
