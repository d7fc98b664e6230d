"""WhatsApp transport over a websocket bridge.

The bridge process runs the WhatsApp Web client and relays JSON frames:
connection/creds/message events towards us, send/presence/pairing requests
back to WhatsApp.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, AsyncIterator

import websockets
from loguru import logger

from fortysix.errors import TransportClosedError, TransportError
from fortysix.transport.base import Socket, Transport
from fortysix.transport.events import (
    CloseReason,
    ConnectionStatus,
    ConnectionUpdate,
    CredentialsUpdated,
    InboundEnvelope,
    MessageReceived,
    TransportEvent,
)
from fortysix.transport.protocol import (
    KEY_REQUEST_ID,
    KEY_TYPE,
    REASON_CONNECTION_LOST,
    TYPE_CONNECT,
    TYPE_CONNECTION,
    TYPE_CREDS,
    TYPE_MESSAGE,
    TYPE_PAIRING_CODE,
    TYPE_PRESENCE,
    TYPE_RESULT,
    TYPE_SEND,
    decode_frame,
    encode_frame,
    field_text,
    new_request_id,
)


class BridgeSocket(Socket):
    """Socket backed by one websocket connection to the bridge."""

    def __init__(self, ws: Any, request_timeout_s: float = 60.0):
        self._ws = ws
        self._request_timeout_s = request_timeout_s
        self._pending: dict[str, asyncio.Future] = {}
        self._closed = False
        self._close_emitted = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def events(self) -> AsyncIterator[TransportEvent]:
        try:
            async for raw in self._ws:
                data = decode_frame(raw)
                if data is None:
                    logger.warning(f"Malformed bridge frame: {str(raw)[:100]}")
                    continue
                event = self._parse_frame(data)
                if event is not None:
                    yield event
        except websockets.ConnectionClosed as e:
            logger.debug(f"Bridge websocket closed: {e}")
        finally:
            self._mark_closed()

        if not self._close_emitted:
            self._close_emitted = True
            yield ConnectionUpdate(
                status=ConnectionStatus.CLOSE,
                close_reason=CloseReason(reason=REASON_CONNECTION_LOST),
            )

    def _parse_frame(self, data: dict[str, Any]) -> TransportEvent | None:
        frame_type = data.get(KEY_TYPE)

        if frame_type == TYPE_RESULT:
            self._resolve(data)
            return None

        if frame_type == TYPE_CONNECTION:
            user = data.get("user") or {}
            if isinstance(user, dict) and user.get("id"):
                self.user_id = field_text(user, "id")
                self.user_name = field_text(user, "name") or None
            try:
                status = ConnectionStatus(data.get("state"))
            except ValueError:
                logger.debug(f"Ignoring bridge connection state {data.get('state')!r}")
                return None
            close_reason = None
            if status is ConnectionStatus.CLOSE:
                self._close_emitted = True
                code = data.get("statusCode")
                close_reason = CloseReason(
                    status_code=int(code) if isinstance(code, (int, float)) else None,
                    reason=field_text(data, "reason"),
                    message=field_text(data, "error"),
                )
            return ConnectionUpdate(
                status=status,
                registered=bool(data.get("registered", True)),
                close_reason=close_reason,
                qr=field_text(data, "qr") or None,
            )

        if frame_type == TYPE_CREDS:
            creds = data.get("creds")
            if not isinstance(creds, dict):
                return None
            return CredentialsUpdated(state=creds)

        if frame_type == TYPE_MESSAGE:
            chat_id = field_text(data, "chat")
            if not chat_id:
                return None
            ts = data.get("timestamp")
            timestamp = (
                datetime.fromtimestamp(ts) if isinstance(ts, (int, float)) else datetime.now()
            )
            return MessageReceived(
                InboundEnvelope(
                    message_id=field_text(data, "id"),
                    chat_id=chat_id,
                    sender_id=field_text(data, "sender") or chat_id,
                    text=data.get("text") if isinstance(data.get("text"), str) else "",
                    from_me=bool(data.get("fromMe")),
                    timestamp=timestamp,
                    push_name=field_text(data, "pushName"),
                )
            )

        logger.debug(f"Ignoring bridge frame type {frame_type!r}")
        return None

    def _resolve(self, data: dict[str, Any]) -> None:
        future = self._pending.pop(str(data.get(KEY_REQUEST_ID) or ""), None)
        if future is None or future.done():
            return
        if data.get("ok"):
            future.set_result(data.get("value"))
        else:
            future.set_exception(TransportError(field_text(data, "error") or "request failed"))

    def _mark_closed(self) -> None:
        self._closed = True
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(TransportClosedError("connection closed"))

    async def _request(self, frame_type: str, payload: dict[str, Any]) -> Any:
        if self._closed:
            raise TransportClosedError("connection closed")

        request_id = new_request_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send(
                encode_frame(frame_type, **{KEY_REQUEST_ID: request_id}, **payload)
            )
            return await asyncio.wait_for(future, timeout=self._request_timeout_s)
        except websockets.ConnectionClosed as e:
            self._mark_closed()
            raise TransportClosedError(f"connection closed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"{frame_type} request timed out") from e
        finally:
            self._pending.pop(request_id, None)

    async def send_text(self, address: str, text: str, quoted_id: str | None = None) -> None:
        payload: dict[str, Any] = {"to": address, "text": text}
        if quoted_id:
            payload["quoted"] = quoted_id
        await self._request(TYPE_SEND, payload)

    async def send_presence(self, address: str, state: str) -> None:
        await self._request(TYPE_PRESENCE, {"to": address, "state": state})

    async def request_pairing_code(self, phone_number: str) -> str:
        value = await self._request(TYPE_PAIRING_CODE, {"phone": phone_number})
        code = value.strip() if isinstance(value, str) else ""
        if not code:
            raise TransportError("bridge returned an empty pairing code")
        return code

    async def close(self) -> None:
        self._mark_closed()
        try:
            await self._ws.close()
        except Exception as e:
            logger.debug(f"Error closing bridge websocket: {e}")


class BridgeTransport(Transport):
    """Connects to the bridge and hands it our stored credentials."""

    def __init__(self, url: str, request_timeout_s: float = 60.0):
        self.url = url
        self.request_timeout_s = request_timeout_s

    async def connect(self, auth_state: dict[str, Any] | None) -> Socket:
        logger.info(f"Connecting to WhatsApp bridge at {self.url}...")
        try:
            ws = await websockets.connect(self.url)
        except (OSError, websockets.InvalidHandshake, websockets.InvalidURI) as e:
            raise TransportError(f"Could not connect to bridge {self.url}: {e}") from e

        try:
            await ws.send(encode_frame(TYPE_CONNECT, auth=auth_state))
        except websockets.ConnectionClosed as e:
            raise TransportClosedError(f"bridge closed during handshake: {e}") from e
        return BridgeSocket(ws, request_timeout_s=self.request_timeout_s)
