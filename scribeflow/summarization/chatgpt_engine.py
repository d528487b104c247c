"""ChatGPT summarization engine producing Markdown bullet points."""

import asyncio
import json
import logging
from typing import Optional, Tuple

import aiohttp

from .base import AbstractSummarizationEngine
from ..models.errors import SummarizationError, SummarizationErrorKind

logger = logging.getLogger(__name__)

CHAT_API_URL = "https://api.openai.com/v1/chat/completions"

LANGUAGE_NAMES = {
    "de": "German",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "pl": "Polish",
    "ru": "Russian",
    "ja": "Japanese",
    "zh": "Chinese",
    "ko": "Korean",
}


def summarization_prompt(language: str) -> str:
    language_name = LANGUAGE_NAMES.get(language, "the same language as the transcription")
    return ("Summarize the following transcription into concise Markdown-formatted bullet points. "
            f"Respond in {language_name}.")


class ChatGPTSummarizationEngine(AbstractSummarizationEngine):
    """Sends a transcription to the chat completions API and returns its summary."""

    def __init__(self, api_key: Optional[str], language: str = "en", model: str = "gpt-4o-mini",
                 temperature: float = 0.3, max_tokens: int = 1000, timeout_seconds: float = 60.0):
        """Initialize ChatGPT summarization engine.

        Args:
            api_key: OpenAI API key
            language: ISO 639-1 code of the summary language
            model: ChatGPT model to use
            temperature: Temperature for response generation (0.0 to 1.0)
            max_tokens: Maximum tokens in response
            timeout_seconds: Total timeout of one request
        """
        self.api_key = api_key
        self.language = language
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        logger.info(f"ChatGPTSummarizationEngine initialized with model: {model}")

    def build_request(self, text: str) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": summarization_prompt(self.language)},
                {"role": "user", "content": text},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def summarize(self, text: str) -> str:
        if not text or not text.strip():
            raise SummarizationError(SummarizationErrorKind.EMPTY_TEXT, "Nothing to summarize")
        if not self.api_key:
            raise SummarizationError(SummarizationErrorKind.API_KEY_NOT_CONFIGURED,
                                     "API key not configured. Please add your OpenAI API key to the configuration.")

        try:
            status, body = await self._post(self.build_request(text))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SummarizationError(SummarizationErrorKind.NETWORK_ERROR,
                                     f"Summarization failed - check your internet connection ({e})") from e

        summary = self.interpret_response(status, body)
        logger.info(f"Summary generated ({len(summary)} chars)")
        return summary

    async def _post(self, data: dict) -> Tuple[int, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(CHAT_API_URL, headers=headers, json=data) as response:
                return response.status, await response.text()

    @staticmethod
    def interpret_response(status: int, body: str) -> str:
        """Extract the summary from a chat completions response, or raise."""
        if status == 200:
            try:
                result = json.loads(body)
                choices = result.get("choices") or []
                summary = choices[0]["message"]["content"] if choices else ""
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise SummarizationError(SummarizationErrorKind.API_ERROR,
                                         f"Failed to parse response: {e}") from e
            return (summary or "").strip()

        if status == 401:
            raise SummarizationError(SummarizationErrorKind.INVALID_API_KEY,
                                     "Invalid API key. Please check your OpenAI API key.")
        if status == 429:
            raise SummarizationError(SummarizationErrorKind.RATE_LIMIT_EXCEEDED,
                                     "Rate limit exceeded - please wait a moment and try again.")

        try:
            message = json.loads(body)["error"]["message"]
        except (ValueError, KeyError, TypeError):
            message = body
        raise SummarizationError(SummarizationErrorKind.API_ERROR, f"ChatGPT API error: {status} - {message}")
