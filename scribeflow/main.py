"""Main application entry point for Scribeflow."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markdown import Markdown

from .audio.capture import AudioCaptureEngine
from .audio.pyaudio_device import PyAudioDevice
from .config import ScribeflowConfig
from .services.event_publisher import SessionEventPublisher
from .services.recording_service import RecordingService
from .state.session_store import SessionStateStore
from .storage.file_manager import RecordingStorage
from .storage.history_store import JsonHistoryStore, MAX_HISTORY_ITEMS
from .summarization.chatgpt_engine import ChatGPTSummarizationEngine
from .transcription.whisper_backend import WhisperTranscriptionBackend, MAX_RETRY_ATTEMPTS
from .ui.keyboard_input import KeyboardHotkey
from .ui.status_screen import StatusScreen

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "scribeflow.yaml"


class Application:
    """Composition root: builds every component around one publisher and store."""

    def __init__(self, config_path: str, log_level: Optional[str] = None):
        self.config = ScribeflowConfig(config_path)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.console = Console()
        self.service: Optional[RecordingService] = None
        self.screen: Optional[StatusScreen] = None
        self.hotkeys: Optional[KeyboardHotkey] = None
        self._quit: Optional[asyncio.Event] = None

    def init(self) -> None:
        logger.info("Initializing services...")

        sample_rate = self.config.get('audio.sample_rate', 16000)
        chunk_size = self.config.get('audio.chunk_size', 1024)
        channels = self.config.get('audio.channels', 1)
        logger.info(f"Audio settings: {sample_rate}Hz, {chunk_size} samples/chunk, {channels} channels")

        api_key = self.config.get_api_key()
        language = self.config.get('openai.language', 'en')
        if not api_key:
            logger.warning("No OpenAI API key configured; transcription will fail until one is set")

        self.publisher = SessionEventPublisher()
        self.store = SessionStateStore(self.publisher)
        capture_engine = AudioCaptureEngine(
            device=PyAudioDevice(sample_rate=sample_rate, chunk_size=chunk_size, channels=channels),
            publisher=self.publisher,
        )

        data_dir = self.config.get_data_directory()
        recording_storage = RecordingStorage(data_dir)
        recording_storage.ensure_storage_ready()
        history = JsonHistoryStore(
            data_dir,
            recording_storage=recording_storage,
            max_items=self.config.get('storage.max_history_items', MAX_HISTORY_ITEMS),
        )

        transcriber = WhisperTranscriptionBackend(
            api_key=api_key,
            language=language,
            model=self.config.get('transcription.model', 'whisper-1'),
            max_attempts=self.config.get('transcription.max_attempts', MAX_RETRY_ATTEMPTS),
        )
        summarizer = ChatGPTSummarizationEngine(
            api_key=api_key,
            language=language,
            model=self.config.get('summarization.model', 'gpt-4o-mini'),
        )

        self.service = RecordingService(
            capture_engine=capture_engine,
            store=self.store,
            recording_storage=recording_storage,
            history=history,
            transcriber=transcriber,
            summarizer=summarizer,
            publisher=self.publisher,
            budget_seconds=self.config.get_max_duration_seconds(),
            custom_actions=self.config.get_custom_actions(),
        )
        logger.info(f"Recording budget: {self.service.duration_tracker.budget_seconds}s")

    async def run_interactive(self) -> None:
        """Run the rich status screen driven by keyboard hotkeys until 'q'."""
        self._quit = asyncio.Event()
        await self.service.load_history()

        self.screen = StatusScreen(self.service, self.publisher, console=self.console)
        self.hotkeys = KeyboardHotkey()
        self.hotkeys.on_trigger(self.service.toggle)
        self.hotkeys.on_command("p", self.service.toggle_pause)
        self.hotkeys.on_command("t", self.service.retry)
        self.hotkeys.on_command("r", self.service.reset)
        self.hotkeys.on_command("q", self._quit.set)
        self.hotkeys.on_command("0", self._select_live)
        for number in range(1, 10):
            self.hotkeys.on_command(str(number), self._selector(number - 1))
        for action in self.service.custom_actions:
            if action.key:
                self.hotkeys.on_command(action.key, self._action_runner(action.name))

        self.screen.start()
        self.hotkeys.start()
        try:
            while not self._quit.is_set():
                try:
                    await asyncio.wait_for(self._quit.wait(), timeout=1.0)
                except asyncio.TimeoutError:
                    # Keep the timer moving between session updates
                    self.screen.refresh()
        finally:
            self.hotkeys.stop()
            self.screen.close()

    async def run_auto(self, duration: int) -> None:
        """Record for ``duration`` seconds, process, print the result and exit."""
        self.console.print(f"Recording for {duration}s...", style="blue")
        if not await self.service.start():
            error = self.store.capture_error
            self.console.print(f"Could not start recording: {error.message if error else 'unknown error'}",
                               style="bold red")
            return

        await asyncio.sleep(duration)
        self.console.print("Processing...", style="blue")
        await self.service.stop()
        # Auto-stop may have taken over the stop when --duration exceeds the budget
        await self.service.wait_until_idle()
        await self.service.load_history()

        display = self.service.display_state()
        if display.transcription_text:
            self.console.print(display.transcription_text)
        elif display.transcription_error:
            self.console.print(display.transcription_error, style="bold red")
        if display.summary_text:
            self.console.print(Markdown(display.summary_text))
        elif display.summary_error:
            self.console.print(display.summary_error, style="yellow")

    def cleanup(self) -> None:
        if self.service is not None:
            self.service.close()
        logger.info("Application shut down")

    def _select_live(self) -> None:
        self.service.select_history_entry(None)

    def _selector(self, index: int):
        def select() -> None:
            entries = self.service.history_entries
            if index < len(entries):
                self.service.select_history_entry(entries[index].id)
        return select

    def _action_runner(self, name: str):
        def run():
            return self.service.run_custom_action(name)
        return run


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/scribeflow.log')
    console_output = config.get('logging.console_output', False)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("Scribeflow application starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


async def _run(app: Application, args: argparse.Namespace) -> None:
    app.init()
    try:
        if args.auto:
            await app.run_auto(args.duration)
        else:
            await app.run_interactive()
    finally:
        app.cleanup()


def main() -> None:
    """Main entry point for Scribeflow."""
    parser = argparse.ArgumentParser(
        description="Scribeflow - record, transcribe and summarize voice notes",
        epilog="Keys: SPACE=start/stop, p=pause/resume, t=retry, r=reset, q=quit, custom actions from the config"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration YAML file (default: {DEFAULT_CONFIG_PATH})"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from the config, else INFO)"
    )
    parser.add_argument(
        "--auto",
        action="store_true",
        help="Run in automatic mode: record for the given duration, process, print the result and exit"
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=10,
        help="Duration in seconds for auto mode recording (default: 10)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="Scribeflow v0.1.0"
    )
    args = parser.parse_args()

    try:
        app = Application(args.config, args.log_level)
        asyncio.run(_run(app, args))
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logging.error(f"Application error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
