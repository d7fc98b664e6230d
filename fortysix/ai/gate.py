"""Decide whether a message goes to the completion API, and answer it."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from fortysix.config.schema import AIConfig
from fortysix.errors import CompletionError, CompletionErrorKind, classify_error_text
from fortysix.providers.base import LLMProvider
from fortysix.session.manager import ROLE_SYSTEM, ROLE_USER, SessionManager
from fortysix.transport.base import PRESENCE_COMPOSING, PRESENCE_PAUSED, Socket
from fortysix.transport.events import InboundEnvelope
from fortysix.utils.helpers import bare_address, preview

EMPTY_QUERY_TEXT = "❓ Please type your question after `{prefix}`.\nExample: {prefix}What is the capital of France?"

ERROR_REPLIES = {
    CompletionErrorKind.SERVICE: "⚠️ The AI service is having trouble right now. Please try again shortly.",
    CompletionErrorKind.RATE_LIMITED: "⏳ Too many requests right now. Please wait a moment and try again.",
    CompletionErrorKind.TIMEOUT: "⌛ The AI took too long to respond. Please try again.",
    CompletionErrorKind.AUTH: (
        "❌ Invalid AI API key. Check your configuration.\n\n"
        "Get a key at: https://console.groq.com/keys"
    ),
    CompletionErrorKind.GENERIC: "❌ Sorry, I encountered an error processing your request.",
}


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    query: str = ""
    reply: str | None = None
    reason: str = ""


def _deny(reason: str, reply: str | None = None) -> GateDecision:
    return GateDecision(allowed=False, reply=reply, reason=reason)


def evaluate_query(
    text: str,
    *,
    is_group: bool,
    is_self_sender: bool,
    policy: AIConfig,
) -> GateDecision:
    """
    Apply the AI policy to a non-command message.

    Checks run in order and stop at the first denial. Only an empty query
    after the query prefix produces a reply; every other denial is silent.
    """
    if is_group and not policy.in_groups:
        return _deny("ai disabled in groups")
    if not is_group and not policy.in_direct:
        return _deny("ai disabled in direct chats")
    if not is_group and policy.self_only and not is_self_sender:
        return _deny("self-only mode")

    query = (text or "").strip()
    if policy.query_prefix_enabled:
        if not query.startswith(policy.query_prefix):
            return _deny("missing query prefix")
        query = query[len(policy.query_prefix):].strip()
        if not query:
            return _deny("empty query", EMPTY_QUERY_TEXT.format(prefix=policy.query_prefix))

    if not query:
        return _deny("empty message")
    return GateDecision(allowed=True, query=query)


class QueryGate:
    """Runs allowed queries through the completion API and replies in chat."""

    def __init__(
        self,
        policy: AIConfig,
        sessions: SessionManager,
        provider: LLMProvider,
        system_prompt: str = "",
    ):
        self.policy = policy
        self.sessions = sessions
        self.provider = provider
        self.system_prompt = system_prompt

    def build_messages(self, key: str, query: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": ROLE_SYSTEM, "content": self.system_prompt})
        messages.extend(self.sessions.history(key))
        messages.append({"role": ROLE_USER, "content": query})
        return messages

    async def handle(self, envelope: InboundEnvelope, socket: Socket) -> None:
        is_self = bool(socket.user_id) and bare_address(envelope.sender_id) == bare_address(
            socket.user_id or ""
        )
        decision = evaluate_query(
            envelope.text,
            is_group=envelope.is_group,
            is_self_sender=is_self,
            policy=self.policy,
        )
        if not decision.allowed:
            if decision.reply:
                await self._send(socket, envelope, decision.reply)
            else:
                logger.debug(f"AI skipped for {envelope.session_key}: {decision.reason}")
            return

        reply = await self.answer(envelope, socket, decision.query)
        await self._send(socket, envelope, reply)
        logger.info(f"🤖 AI response sent to {'GROUP' if envelope.is_group else 'DM'}")

    async def answer(self, envelope: InboundEnvelope, socket: Socket, query: str) -> str:
        """
        Ask the completion API and record the exchange.

        The session is only touched on success. Presence goes back to
        `paused` whatever happens.
        """
        key = envelope.session_key
        await self._presence(socket, envelope.chat_id, PRESENCE_COMPOSING)
        try:
            response = await self.provider.chat(
                self.build_messages(key, query),
                model=self.policy.model,
                max_tokens=self.policy.max_tokens,
                temperature=self.policy.temperature,
            )
        except CompletionError as e:
            logger.warning(f"Completion failed for {key} ({e.kind.value}): {e}")
            return ERROR_REPLIES[e.kind]
        except Exception as e:
            kind = classify_error_text(str(e))
            logger.exception(f"Unexpected completion error for {key}: {e}")
            return ERROR_REPLIES[kind]
        finally:
            await self._presence(socket, envelope.chat_id, PRESENCE_PAUSED)

        self.sessions.append(key, query, response.content)
        logger.debug(f"AI reply for {key}: {preview(response.content, 120)}")
        return response.content

    @staticmethod
    async def _presence(socket: Socket, address: str, state: str) -> None:
        try:
            await socket.send_presence(address, state)
        except Exception as e:
            logger.debug(f"Presence update {state} failed for {address}: {e}")

    @staticmethod
    async def _send(socket: Socket, envelope: InboundEnvelope, text: str) -> None:
        try:
            await socket.send_text(envelope.chat_id, text, quoted_id=envelope.message_id or None)
        except Exception as e:
            logger.error(f"Failed to send reply to {envelope.chat_id}: {e}")
