"""LLM client used for client advisory text."""

from practice_desk.clients.gemini import GeminiClient, GeminiResponse

__all__ = [
    "GeminiClient",
    "GeminiResponse",
]
