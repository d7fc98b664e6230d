"""LLM provider abstraction module."""

from fortysix.providers.base import LLMProvider, LLMResponse
from fortysix.providers.groq import GroqProvider

__all__ = ["LLMProvider", "LLMResponse", "GroqProvider"]
