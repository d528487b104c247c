"""Rich terminal screen showing the capture state and the resolved results."""

import logging
from collections import deque
from typing import Optional

from rich.align import Align
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.capture import CaptureState
from ..models.events import SessionUpdateEvent, NoticeEvent, DurationWarningEvent
from ..models.processing import Phase
from ..services.event_publisher import (
    SessionEventPublisher,
    TOPIC_SESSION_UPDATED,
    TOPIC_NOTICE,
    TOPIC_DURATION_WARNING,
)
from ..services.recording_service import RecordingService
from ..state.selection import SOURCE_HISTORY

logger = logging.getLogger(__name__)

_STATE_LABELS = {
    CaptureState.IDLE: ("IDLE", "bold white"),
    CaptureState.CAPTURING: ("RECORDING", "bold red"),
    CaptureState.PAUSED: ("PAUSED", "bold yellow"),
    CaptureState.STOPPED: ("STOPPED", "bold yellow"),
}

_NOTICE_STYLES = {"info": "cyan", "warning": "yellow", "error": "bold red"}


class StatusScreen:
    """Renders the recording service's state; redraws on every session update."""

    def __init__(self, service: RecordingService, publisher: SessionEventPublisher,
                 console: Optional[Console] = None, max_notices: int = 3):
        self.service = service
        self.publisher = publisher
        self.console = console or Console()
        self.notices = deque(maxlen=max_notices)
        self.layout = self.create_layout()
        self._live: Optional[Live] = None

        publisher.subscribe(self._on_session_updated, TOPIC_SESSION_UPDATED)
        publisher.subscribe(self._on_notice, TOPIC_NOTICE)
        publisher.subscribe(self._on_duration_warning, TOPIC_DURATION_WARNING)

    def create_layout(self) -> Layout:
        """Create the main UI layout."""
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main", ratio=1),
            Layout(name="notices", size=5),
            Layout(name="footer", size=3),
        )
        layout["main"].split_row(
            Layout(name="history_panel", ratio=1),
            Layout(name="result_panel", ratio=2),
        )
        layout["result_panel"].split_column(
            Layout(name="transcription_panel", ratio=1),
            Layout(name="summary_panel", ratio=1),
        )
        return layout

    def render(self) -> Layout:
        """Update every panel from the current service state."""
        self.update_header()
        self.update_history_panel()
        self.update_result_panels()
        self.update_notices()
        self.update_footer()
        return self.layout

    def update_header(self) -> None:
        capture = self.service.store.capture
        label, style = _STATE_LABELS[capture.capture_state]
        status = self.service.duration_status()
        timer_style = "bold yellow" if status.show_warning else "white"
        header_text = Text.assemble(
            ("Scribeflow", "bold blue"), "  |  ",
            (label, style), "  |  ",
            (f"{status.formatted_elapsed} elapsed, {status.formatted_remaining} left", timer_style),
        )
        if self.service.is_busy:
            header_text.append("  |  processing...", style="italic cyan")
        self.layout["header"].update(Panel(Align.center(header_text), style="bright_blue"))

    def update_history_panel(self) -> None:
        selected = self.service.store.selection.selected_history_id
        table = Table(show_header=True, header_style="bold magenta", expand=True)
        table.add_column("#", width=3)
        table.add_column("Created")
        table.add_column("Len", justify="right")
        table.add_column("Summary", justify="center")
        for index, entry in enumerate(self.service.history_entries[:9], start=1):
            style = "reverse" if entry.id == selected else None
            table.add_row(
                str(index),
                entry.created_at[:16].replace("T", " "),
                f"{int(entry.duration_seconds)}s",
                "yes" if entry.summary_text else "-",
                style=style,
            )
        self.layout["history_panel"].update(Panel(table, title="History", border_style="green"))

    def update_result_panels(self) -> None:
        display = self.service.display_state()
        source = "history" if display.source == SOURCE_HISTORY else "live"

        if display.transcription_phase is Phase.RUNNING:
            transcription = Text("Transcribing audio...", style="yellow italic")
        elif display.transcription_phase is Phase.FAILED:
            hint = "  (press 't' to retry)" if display.retryable else ""
            transcription = Text(f"{display.transcription_error}{hint}", style="red")
        elif display.transcription_text:
            transcription = Text(display.transcription_text, style="white")
        else:
            transcription = Text("Press SPACE to start recording", style="dim white italic")
        self.layout["transcription_panel"].update(Panel(
            transcription, title=f"Transcription ({source})", border_style="blue"))

        if display.summary_phase is Phase.RUNNING:
            summary = Text("Summarizing...", style="yellow italic")
        elif display.summary_phase is Phase.FAILED:
            summary = Text(display.summary_error or "Summary failed", style="red")
        elif display.summary_text:
            summary = Markdown(display.summary_text)
        else:
            summary = Text("")
        self.layout["summary_panel"].update(Panel(summary, title="Summary", border_style="blue"))

    def update_notices(self) -> None:
        lines = Text()
        for notice in self.notices:
            lines.append(f"{notice.title}: ", style=_NOTICE_STYLES.get(notice.level, "white"))
            lines.append(f"{notice.message}\n")
        self.layout["notices"].update(Panel(lines, title="Messages", border_style="bright_black"))

    def update_footer(self) -> None:
        controls = Text.assemble(
            ("Controls: ", "bold"),
            ("SPACE", "bold green"), " Start/Stop  ",
            ("P", "bold yellow"), " Pause/Resume  ",
            ("T", "bold cyan"), " Retry  ",
            ("1-9", "bold magenta"), " Select  ",
            ("0", "bold magenta"), " Live  ",
            ("R", "bold blue"), " Reset  ",
            ("Q", "bold red"), " Quit",
        )
        for action in self.service.custom_actions:
            if action.key:
                controls.append_text(Text.assemble("  ", (action.key.upper(), "bold green"), f" {action.name}"))
        self.layout["footer"].update(Panel(Align.center(controls), style="bright_black"))

    def start(self) -> None:
        self._live = Live(self.render(), console=self.console, refresh_per_second=4, screen=True)
        self._live.start()

    def stop(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def refresh(self) -> None:
        if self._live is not None:
            self._live.update(self.render())

    def close(self) -> None:
        self.stop()
        self.publisher.unsubscribe(self._on_session_updated, TOPIC_SESSION_UPDATED)
        self.publisher.unsubscribe(self._on_notice, TOPIC_NOTICE)
        self.publisher.unsubscribe(self._on_duration_warning, TOPIC_DURATION_WARNING)

    def _on_session_updated(self, event: SessionUpdateEvent) -> None:
        self.refresh()

    def _on_notice(self, event: NoticeEvent) -> None:
        self.notices.append(event)
        self.refresh()

    def _on_duration_warning(self, event: DurationWarningEvent) -> None:
        self.notices.append(NoticeEvent(
            level="warning",
            title="Time almost up",
            message=f"{event.remaining_seconds}s of recording left",
        ))
        self.refresh()
