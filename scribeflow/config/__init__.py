"""YAML configuration for Scribeflow."""

import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional, List

import yaml

from ..actions.external_client import validate_url
from ..models.actions import CustomAction
from ..models.errors import ExternalActionError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DURATION_MINUTES = 5
API_KEY_ENV_VAR = "OPENAI_API_KEY"

# Keys handed to custom actions in order when none is configured
ACTION_KEYS = "asdfghjkl"
RESERVED_KEYS = frozenset(" ptrq0123456789")

# Keys holding file system paths; relative values are anchored at the config file
PATH_KEYS = ("storage.data_directory", "logging.file_path")

_MISSING = object()


class ScribeflowConfig:
    """Configuration read from a YAML mapping, addressed with dotted keys."""

    def __init__(self, config_path: str):
        """Load the configuration file.

        Args:
            config_path: Path to the YAML file

        Raises:
            FileNotFoundError: The file does not exist
            ValueError: The file is empty, not valid YAML, or not a mapping
        """
        self.config_file = Path(config_path)
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config: Dict[str, Any] = self._read()
        self._anchor_paths()
        logger.info(f"Configuration loaded ({', '.join(sorted(self.config))})")

    def _read(self) -> Dict[str, Any]:
        try:
            text = self.config_file.read_text(encoding='utf-8')
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}") from e

        if not data:
            raise ValueError("Configuration file is empty")
        if not isinstance(data, dict):
            raise ValueError(f"Configuration must be a mapping, got {type(data).__name__}")
        return data

    def _anchor_paths(self) -> None:
        base = self.config_file.parent
        for key_path in PATH_KEYS:
            value = self.get(key_path)
            if value and not os.path.isabs(value):
                self.set(key_path, str(base / value))

    def get(self, key_path: str, default: Any = None) -> Any:
        """Value at a dotted key path such as ``'openai.language'``, or ``default``."""
        node: Any = self.config
        for key in key_path.split('.'):
            node = node.get(key, _MISSING) if isinstance(node, dict) else _MISSING
            if node is _MISSING:
                return default
        return node

    def set(self, key_path: str, value: Any) -> None:
        """Set a value at a dotted key path, creating intermediate sections."""
        *parents, leaf = key_path.split('.')
        section = self.config
        for key in parents:
            section = section.setdefault(key, {})
        section[leaf] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_data_directory(self) -> str:
        """Absolute path of the directory holding recordings and history."""
        return str(Path(self.get('storage.data_directory', 'data')).absolute())

    def get_max_duration_seconds(self) -> int:
        """Recording budget in seconds; configured as ``recording.max_duration_minutes``.

        Raises:
            ValueError: The value is not a positive number
        """
        raw = self.get('recording.max_duration_minutes', DEFAULT_MAX_DURATION_MINUTES)
        try:
            minutes = float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"recording.max_duration_minutes must be a number, got: {raw!r}")
        if minutes <= 0:
            raise ValueError(f"recording.max_duration_minutes must be positive, got: {raw!r}")
        return int(minutes * 60)

    def get_api_key(self) -> Optional[str]:
        """OpenAI API key from ``openai.api_key``, else the OPENAI_API_KEY variable."""
        return self.get('openai.api_key') or os.environ.get(API_KEY_ENV_VAR)

    def get_custom_actions(self) -> List[CustomAction]:
        """Custom actions from the ``custom_actions`` list, each with its hotkey.

        Raises:
            ValueError: An entry lacks a name, has a non-http(s) URL, or
                repeats a name or key
        """
        entries = self.get('custom_actions') or []
        if not isinstance(entries, list):
            raise ValueError("custom_actions must be a list")

        actions: List[CustomAction] = []
        explicit = {str(e['key']).lower() for e in entries if isinstance(e, dict) and e.get('key') is not None}
        free_keys = [k for k in ACTION_KEYS if k not in explicit]
        for entry in entries:
            if not isinstance(entry, dict) or not str(entry.get('name') or '').strip():
                raise ValueError(f"Custom action needs a name: {entry!r}")
            name = str(entry['name']).strip()
            try:
                url = validate_url(str(entry.get('url') or ''))
            except ExternalActionError as e:
                raise ValueError(f"Custom action '{name}': {e.message}") from e

            key = entry.get('key')
            if key is not None:
                key = str(key).lower()
                if len(key) != 1 or key in RESERVED_KEYS:
                    raise ValueError(f"Custom action '{name}': key {key!r} is not available")
            elif free_keys:
                key = free_keys.pop(0)

            if any(a.name == name for a in actions):
                raise ValueError(f"Duplicate custom action name: {name}")
            if key is not None and any(a.key == key for a in actions):
                raise ValueError(f"Custom action '{name}': key {key!r} is already used")
            actions.append(CustomAction(name=name, url=url, key=key))

        logger.debug(f"Custom actions: {[a.name for a in actions]}")
        return actions
