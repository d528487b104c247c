"""Text summarization engines for Scribeflow."""

from .base import AbstractSummarizationEngine
from .chatgpt_engine import ChatGPTSummarizationEngine

__all__ = ["AbstractSummarizationEngine", "ChatGPTSummarizationEngine"]
