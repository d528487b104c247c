"""Abstract base class for summarization engines."""

from abc import ABC, abstractmethod


class AbstractSummarizationEngine(ABC):
    """Turns a transcription into a Markdown summary."""

    @abstractmethod
    async def summarize(self, text: str) -> str:
        """Summarize text.

        Returns:
            Markdown summary

        Raises:
            SummarizationError: The summary could not be produced
        """
        pass
