"""Test chat and conversational refinement over an editor session."""

from __future__ import annotations

from typing import List

from personastudio.errors import EmptyInputError
from personastudio.schemas import ChatMessage, RefinementReply
from personastudio.services.gateway import AIGateway
from personastudio.services.sync import SyncEngine


class TestChat:
    """
    Chat with the persona being edited, using the session's current state.

    A failed turn rolls the transcript back to what it was before the send.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, gateway: AIGateway, engine: SyncEngine):
        self.gateway = gateway
        self.engine = engine
        self.messages: List[ChatMessage] = []

    async def send(self, text: str) -> ChatMessage:
        if not text.strip():
            raise EmptyInputError("Message is empty")

        previous = list(self.messages)
        self.messages = previous + [ChatMessage(role="user", text=text)]
        try:
            reply = await self.gateway.chat_reply(self.engine.state, self.messages)
        except Exception:
            self.messages = previous
            raise

        message = ChatMessage(role="model", text=reply)
        self.messages.append(message)
        return message

    def reset(self) -> None:
        self.messages = []


class RefinementChat:
    """
    Refine the persona by talking to an assistant.

    Each reply may carry partial parameter updates, which are merged into
    the editor session like a hand edit.
    """

    def __init__(self, gateway: AIGateway, engine: SyncEngine):
        self.gateway = gateway
        self.engine = engine
        self.messages: List[ChatMessage] = []

    async def start(self) -> ChatMessage:
        """Reset the transcript and open with the persona's greeting."""
        greeting = await self.gateway.welcome_message(self.engine.state)
        message = ChatMessage(role="model", text=greeting)
        self.messages = [message]
        return message

    async def send(self, text: str) -> RefinementReply:
        if not text.strip():
            raise EmptyInputError("Message is empty")

        previous = list(self.messages)
        self.messages = previous + [ChatMessage(role="user", text=text)]
        try:
            reply = await self.gateway.conversational_refine(
                self.messages, self.engine.state.parameters()
            )
        except Exception:
            self.messages = previous
            raise

        self.messages.append(ChatMessage(role="model", text=reply.response_text))
        if reply.updated_parameters:
            self.engine.apply_parameter_updates(reply.updated_parameters)
        return reply
