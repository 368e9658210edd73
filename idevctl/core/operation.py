"""Progress tracking for long-running, multi-message operations.

After a command such as ``Install`` is written, the device streams status
dictionaries until the operation finishes::

    Sent -> Progress* -> Complete | Failed

A message with ``ErrorDescription`` fails the operation. ``PercentComplete``
reports progress to the caller's sink, synchronously and in message order.
``Status == "Complete"`` ends it; any other ``Status`` is ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from idevctl.core.errors import InstallationFailedError, OperationFinishedError
from idevctl.core.model import OperationProgress
from idevctl.core.values import Dictionary

LOGGER = logging.getLogger(__name__)

DEFAULT_STATUS_LABEL = "Installing"
COMPLETE_STATUS = "Complete"

ProgressSink = Callable[[int, str], None]


class MessageSource(Protocol):
    def read_plist(self) -> Dictionary:
        """Receive the next message of the stream."""


class OperationState(Enum):
    SENT = "sent"
    PROGRESS = "progress"
    COMPLETE = "complete"
    FAILED = "failed"


def status_label(message: Dictionary) -> str:
    for key in ("CurrentOperation", "StatusDescription", "Phase"):
        value = message.get(key)
        if isinstance(value, str):
            return value
    return DEFAULT_STATUS_LABEL


class OperationWatcher:
    def __init__(self, progress: ProgressSink | None = None) -> None:
        self.sink = progress
        self.state = OperationState.SENT
        self.progress = OperationProgress()

    @property
    def terminal(self) -> bool:
        return self.state in (OperationState.COMPLETE, OperationState.FAILED)

    def feed(self, message: Dictionary) -> bool:
        """Apply one message; return True once the operation completed."""
        if self.terminal:
            raise OperationFinishedError(f"Operation already {self.state.value}")

        error = message.get("ErrorDescription")
        if isinstance(error, str):
            self.state = OperationState.FAILED
            self.progress.terminal = True
            self.progress.error = error
            LOGGER.warning("Operation failed: %s", error)
            raise InstallationFailedError(error)

        label = status_label(message)
        self.progress.status_label = label

        percent = message.get("PercentComplete")
        if isinstance(percent, int) and not isinstance(percent, bool) and percent >= 0:
            self.state = OperationState.PROGRESS
            self.progress.percent_complete = percent
            LOGGER.info("Installing on device: %s (%.1f%%)", label, float(percent))
            if self.sink is not None:
                self.sink(percent, label)

        if message.get("Status") == COMPLETE_STATUS:
            self.state = OperationState.COMPLETE
            self.progress.terminal = True
            return True
        return False

    def run(self, source: MessageSource) -> None:
        while not self.feed(source.read_plist()):
            pass


def watch_completion(source: MessageSource, progress: ProgressSink | None = None) -> None:
    OperationWatcher(progress).run(source)


def collect_browse(source: MessageSource) -> list[Any]:
    """Accumulate ``CurrentList`` batches until the listing completes.

    A message without ``CurrentList`` ends the listing early and whatever was
    gathered so far is returned.
    """
    values: list[Any] = []
    while True:
        message = source.read_plist()
        batch = message.get("CurrentList")
        if not isinstance(batch, list):
            LOGGER.warning("Browse message did not contain CurrentList; returning %d entries", len(values))
            break
        values.extend(batch)
        if message.get("Status") == COMPLETE_STATUS:
            break
    return values
