"""Terminal hotkeys: a single trigger key plus command keys."""

import asyncio
import inspect
import logging
import sys
import threading
import time
from typing import Optional, Callable, Dict, List, Any

logger = logging.getLogger(__name__)

TRIGGER_KEY = " "


class KeyboardHotkey:
    """Reads single key presses in a background thread.

    Key presses are handed to the event loop with ``call_soon_threadsafe``;
    callbacks therefore always run on the loop thread. A callback may return
    an awaitable, which is scheduled as a task.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, trigger_key: str = TRIGGER_KEY):
        """Initialize keyboard hotkeys.

        Args:
            loop: Loop receiving key presses; defaults to the running loop at ``start()``
            trigger_key: Key that fires the ``on_trigger`` callbacks
        """
        self.loop = loop
        self.trigger_key = trigger_key
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._trigger_callbacks: List[Callable[[], Any]] = []
        self._commands: Dict[str, Callable[[], Any]] = {}
        self._tasks = set()

    def on_trigger(self, callback: Callable[[], Any]) -> None:
        """Register a callback for the trigger key; it receives no arguments."""
        self._trigger_callbacks.append(callback)

    def on_command(self, key: str, callback: Callable[[], Any]) -> None:
        self._commands[key.lower()] = callback

    def start(self) -> None:
        """Start the keyboard reader thread."""
        if self.running:
            return
        if self.loop is None:
            self.loop = asyncio.get_running_loop()

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, daemon=True)
        self.thread.name = "KeyboardInputThread"
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        """Stop the keyboard reader thread."""
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def handle_key(self, key: str) -> None:
        """Dispatch one key press. Must run on the loop thread."""
        key = key.lower()
        if key == self.trigger_key:
            callbacks = list(self._trigger_callbacks)
        elif key in self._commands:
            callbacks = [self._commands[key]]
        else:
            logger.debug(f"Unbound key: {key!r}")
            return

        for callback in callbacks:
            outcome = callback()
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Hotkey action failed: {task.exception()!r}")

    def _input_loop(self) -> None:
        """Main input handling loop."""
        logger.info("Starting keyboard input loop")
        while self.running:
            try:
                key = self._get_key()
            except (OSError, ValueError) as e:
                logger.error(f"Error in input loop: {e}")
                break
            if key:
                logger.debug(f"Key detected: {key!r}")
                if self.loop.is_closed():
                    break
                self.loop.call_soon_threadsafe(self.handle_key, key)
            # Small delay to prevent busy waiting
            time.sleep(0.05)
        logger.info("Keyboard input loop ended")

    def _get_key(self) -> Optional[str]:
        """Get a single keypress in a cross-platform way."""
        if sys.platform == "win32":
            return self._get_key_windows()
        return self._get_key_unix()

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt
        if msvcrt.kbhit():
            return msvcrt.getch().decode('utf-8', errors='ignore').lower()
        return None

    def _get_key_unix(self) -> Optional[str]:
        import select
        import termios
        import tty

        if not select.select([sys.stdin], [], [], 0.1)[0]:
            return None
        old_settings = termios.tcgetattr(sys.stdin)
        try:
            tty.setraw(sys.stdin.fileno())
            return sys.stdin.read(1).lower()
        finally:
            termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)
