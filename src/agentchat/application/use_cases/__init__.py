"""Use-case layer: business logic decoupled from the HTTP transport."""

from agentchat.application.use_cases.chat import ChatTurn, ChatTurnRequest, ChatUseCase

__all__ = ["ChatTurn", "ChatTurnRequest", "ChatUseCase"]
