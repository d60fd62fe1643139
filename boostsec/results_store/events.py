"""Typed publish/subscribe channels for realtime run updates."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from boostsec.results_store.models.quality_gate import (
    ExitCode,
    QualityGateValidationResult,
)
from boostsec.results_store.models.test_result import TestError

logger = logging.getLogger(__name__)

Subscriber = Callable[[Any], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


class RealtimeEvent(str, Enum):
    """Channels available on the realtime bus."""

    TEST_RESULT = "test-result"
    TEST_FIXTURE_RESULT = "test-fixture-result"
    ATTACHMENT_FILE = "attachment-file"
    GLOBAL_ERROR = "global-error"
    GLOBAL_ATTACHMENT = "global-attachment"
    GLOBAL_EXIT_CODE = "global-exit-code"
    QUALITY_GATE_RESULTS = "quality-gate-results"


class GlobalAttachment:
    """Payload of the global attachment channel."""

    def __init__(self, attachment: Any, file_name: str | None = None) -> None:
        """Initialize payload with a result file and an optional display name."""
        self.attachment = attachment
        self.file_name = file_name


class RealtimeBus:
    """Publish/subscribe bus with one ordered subscriber list per channel.

    Publishing awaits every subscriber of the channel in registration order.
    A failing subscriber is logged and doesn't prevent the next one from
    being called; the publisher never sees the error.
    """

    def __init__(self) -> None:
        """Initialize bus with empty channels."""
        self._subscribers: dict[RealtimeEvent, list[Subscriber]] = {
            event: [] for event in RealtimeEvent
        }

    def subscribe(self, event: RealtimeEvent, callback: Subscriber) -> Unsubscribe:
        """Register a callback for a channel.

        Args:
            event: Channel to listen to
            callback: Sync or async callable receiving the payload

        Returns:
            Callable removing the registration

        """
        self._subscribers[event].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[event]:
                self._subscribers[event].remove(callback)

        return unsubscribe

    async def publish(self, event: RealtimeEvent, payload: Any) -> None:
        """Deliver a payload to every subscriber of the channel."""
        for callback in list(self._subscribers[event]):
            try:
                outcome = callback(payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(f"Realtime subscriber failed on {event.value}")

    def subscriber_count(self, event: RealtimeEvent) -> int:
        """Return the number of callbacks registered for a channel."""
        return len(self._subscribers[event])

    def clear(self) -> None:
        """Remove every subscription."""
        for callbacks in self._subscribers.values():
            callbacks.clear()

    def on_test_result(self, callback: Callable[[str], Any]) -> Unsubscribe:
        """Subscribe to new test result ids."""
        return self.subscribe(RealtimeEvent.TEST_RESULT, callback)

    def on_test_fixture_result(self, callback: Callable[[str], Any]) -> Unsubscribe:
        """Subscribe to new fixture ids."""
        return self.subscribe(RealtimeEvent.TEST_FIXTURE_RESULT, callback)

    def on_attachment_file(self, callback: Callable[[str], Any]) -> Unsubscribe:
        """Subscribe to new attachment file ids."""
        return self.subscribe(RealtimeEvent.ATTACHMENT_FILE, callback)

    def on_global_error(self, callback: Callable[[TestError], Any]) -> Unsubscribe:
        """Subscribe to errors not bound to a test."""
        return self.subscribe(RealtimeEvent.GLOBAL_ERROR, callback)

    def on_global_attachment(
        self, callback: Callable[[GlobalAttachment], Any]
    ) -> Unsubscribe:
        """Subscribe to attachments not bound to a test."""
        return self.subscribe(RealtimeEvent.GLOBAL_ATTACHMENT, callback)

    def on_global_exit_code(self, callback: Callable[[ExitCode], Any]) -> Unsubscribe:
        """Subscribe to the process exit code."""
        return self.subscribe(RealtimeEvent.GLOBAL_EXIT_CODE, callback)

    def on_quality_gate_results(
        self, callback: Callable[[list[QualityGateValidationResult]], Any]
    ) -> Unsubscribe:
        """Subscribe to quality gate validation results."""
        return self.subscribe(RealtimeEvent.QUALITY_GATE_RESULTS, callback)

    async def send_test_result(self, test_result_id: str) -> None:
        await self.publish(RealtimeEvent.TEST_RESULT, test_result_id)

    async def send_test_fixture_result(self, fixture_id: str) -> None:
        await self.publish(RealtimeEvent.TEST_FIXTURE_RESULT, fixture_id)

    async def send_attachment_file(self, attachment_id: str) -> None:
        await self.publish(RealtimeEvent.ATTACHMENT_FILE, attachment_id)

    async def send_global_error(self, error: TestError) -> None:
        await self.publish(RealtimeEvent.GLOBAL_ERROR, error)

    async def send_global_attachment(
        self, attachment: Any, file_name: str | None = None
    ) -> None:
        await self.publish(
            RealtimeEvent.GLOBAL_ATTACHMENT, GlobalAttachment(attachment, file_name)
        )

    async def send_global_exit_code(self, exit_code: ExitCode) -> None:
        await self.publish(RealtimeEvent.GLOBAL_EXIT_CODE, exit_code)

    async def send_quality_gate_results(
        self, results: list[QualityGateValidationResult] | None
    ) -> None:
        await self.publish(RealtimeEvent.QUALITY_GATE_RESULTS, results or [])
