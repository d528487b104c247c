"""Session event publisher for pub/sub observers."""

import logging
from typing import Callable, Any

from pubsub.core import Publisher

from ..models.events import (
    CaptureStateEvent,
    CaptureErrorEvent,
    DurationWarningEvent,
    SessionUpdateEvent,
    NoticeEvent,
)

logger = logging.getLogger(__name__)

TOPIC_CAPTURE_STATE = "capture_state"
TOPIC_CAPTURE_ERROR = "capture_error"
TOPIC_DURATION_WARNING = "duration_warning"
TOPIC_SESSION_UPDATED = "session_updated"
TOPIC_NOTICE = "notice"


class SessionEventPublisher:
    """Publishes session events using a private pubsub topic tree.

    Every topic carries a single ``event`` argument, so listeners are
    plain ``listener(event)`` callables. Listeners are held by weak
    reference: subscribe bound methods of long-lived objects.
    """

    def __init__(self):
        """Initialize the publisher with its own topic tree."""
        self._publisher = Publisher()
        logger.info("SessionEventPublisher initialized")

    def subscribe(self, listener: Callable[[Any], None], topic: str) -> None:
        """Subscribe a listener to a topic.

        Args:
            listener: Callable taking one ``event`` argument
            topic: Topic name (one of the TOPIC_* constants)
        """
        self._publisher.subscribe(listener, topic)
        logger.debug(f"Subscribed {getattr(listener, '__qualname__', listener)} to {topic}")

    def unsubscribe(self, listener: Callable[[Any], None], topic: str) -> None:
        """Remove a listener from a topic; unknown listeners are ignored."""
        try:
            self._publisher.unsubscribe(listener, topic)
        except Exception as e:
            logger.warning(f"Error during unsubscribe from {topic}: {e}")

    def publish_capture_state(self, event: CaptureStateEvent) -> None:
        self._send(TOPIC_CAPTURE_STATE, event)
        logger.debug(f"Published capture state: {event.previous.value} -> {event.current.value}")

    def publish_capture_error(self, event: CaptureErrorEvent) -> None:
        self._send(TOPIC_CAPTURE_ERROR, event)

    def publish_duration_warning(self, event: DurationWarningEvent) -> None:
        self._send(TOPIC_DURATION_WARNING, event)

    def publish_session_update(self, event: SessionUpdateEvent) -> None:
        self._send(TOPIC_SESSION_UPDATED, event)

    def publish_notice(self, level: str, title: str, message: str) -> None:
        """Publish a side-channel notice for the user."""
        self._send(TOPIC_NOTICE, NoticeEvent(level=level, title=title, message=message))
        log = logger.warning if level in ("warning", "error") else logger.info
        log(f"Notice [{level}] {title}: {message}")

    def _send(self, topic: str, event: Any) -> None:
        self._publisher.sendMessage(topic, event=event)
