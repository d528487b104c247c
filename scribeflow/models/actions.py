"""User-configured custom actions."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CustomAction:
    """A named HTTP endpoint the displayed transcription can be posted to."""
    name: str
    url: str
    key: Optional[str] = None
