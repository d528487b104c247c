"""Unit tests for the application entry point."""

import logging
import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from scribeflow import main as scribeflow_main
from scribeflow.main import Application, setup_logging
from scribeflow.config import ScribeflowConfig


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(temp_data_dir):
    path = Path(temp_data_dir) / "scribeflow.yaml"
    path.write_text(
        "recording:\n"
        "  max_duration_minutes: 2\n"
        "storage:\n"
        "  data_directory: data\n"
        "openai:\n"
        "  api_key: sk-test\n"
        "  language: fr\n"
        "logging:\n"
        "  level: DEBUG\n"
        "  file_path: data/logs/scribeflow.log\n"
        "custom_actions:\n"
        "  - name: Team notes\n"
        "    url: https://hooks.example.com/notes\n",
        encoding='utf-8',
    )
    return str(path)


@pytest.mark.unit
class TestSetupLogging:
    """Test cases for logging setup."""

    def test_file_handler_only_by_default(self, config_file, restore_root_logger):
        config = ScribeflowConfig(config_file)

        setup_logging(config, "INFO")

        root = restore_root_logger
        assert root.level == logging.INFO
        assert [type(h) for h in root.handlers] == [logging.FileHandler]
        assert root.handlers[0].level == logging.DEBUG
        assert Path(config.get('logging.file_path')).exists()

    def test_console_handler_on_stderr(self, config_file, restore_root_logger):
        config = ScribeflowConfig(config_file)
        config.set('logging.console_output', True)

        setup_logging(config, "warning")

        root = restore_root_logger
        assert root.level == logging.WARNING
        console = [h for h in root.handlers if not isinstance(h, logging.FileHandler)]
        assert len(console) == 1
        assert console[0].stream is sys.stderr
        assert console[0].level == logging.WARNING


@pytest.mark.unit
class TestApplication:
    """Test cases for the composition root."""

    def test_init_wires_service(self, config_file, temp_data_dir, restore_root_logger):
        app = Application(config_file)
        app.init()
        try:
            assert restore_root_logger.level == logging.DEBUG
            assert app.service.duration_tracker.budget_seconds == 120
            assert app.service.store is app.store
            assert app.service.orchestrator.transcriber.language == "fr"
            assert app.service.orchestrator.summarizer.language == "fr"
            assert [(a.name, a.key) for a in app.service.custom_actions] == [("Team notes", "a")]
            assert (Path(temp_data_dir) / "data" / "recordings").is_dir()
        finally:
            app.cleanup()

    def test_history_selectors(self, config_file, restore_root_logger):
        app = Application(config_file, log_level="INFO")
        app.init()
        try:
            app.service.history_entries = []
            app._selector(0)()
            assert app.store.selection.selected_history_id is None

            app.store.select_history_entry("x")
            app._select_live()
            assert app.store.selection.selected_history_id is None
        finally:
            app.cleanup()

    def test_auto_run_waits_for_processing(self, config_file, restore_root_logger, capsys):
        app = Application(config_file)
        app.init()
        real_service = app.service
        calls = []

        service = Mock()
        service.start = AsyncMock(return_value=True)
        # An auto-stop already took the recording, so this stop gets nothing
        service.stop = AsyncMock(return_value=None)
        service.wait_until_idle = AsyncMock(side_effect=lambda: calls.append("idle"))
        service.load_history = AsyncMock()

        def display_state():
            calls.append("display")
            return Mock(transcription_text="auto stopped text", transcription_error=None,
                        summary_text=None, summary_error=None)

        service.display_state = display_state
        app.service = service
        try:
            asyncio.run(app.run_auto(0))
        finally:
            app.service = real_service
            app.cleanup()

        assert calls == ["idle", "display"]
        assert "auto stopped text" in capsys.readouterr().out


@pytest.mark.unit
class TestMain:
    """Test cases for the command line entry point."""

    def test_missing_config_exits_with_code_2(self, temp_data_dir, monkeypatch, capsys):
        missing = str(Path(temp_data_dir) / "absent.yaml")
        monkeypatch.setattr(sys, "argv", ["scribeflow", "--config", missing])

        with pytest.raises(SystemExit) as exc_info:
            scribeflow_main.main()

        assert exc_info.value.code == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_version(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["scribeflow", "--version"])

        with pytest.raises(SystemExit):
            scribeflow_main.main()

        assert "Scribeflow v0.1.0" in capsys.readouterr().out
