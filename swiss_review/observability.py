"""Progress events, observer contract, and logging setup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


@dataclass(frozen=True, slots=True)
class ReviewStarted:
    """Emitted before a step is sent to the reasoning service."""

    index: int
    total: int
    name: str
    model: str
    workflow: str | None = None
    kind: Literal["review_started"] = "review_started"


@dataclass(frozen=True, slots=True)
class ReviewFinished:
    """Emitted after a step returns, whether or not it flagged anything."""

    index: int
    total: int
    name: str
    elapsed_ms: int
    flagged_count: int
    workflow: str | None = None
    kind: Literal["review_finished"] = "review_finished"


ProgressEvent = ReviewStarted | ReviewFinished


class ProgressObserver(Protocol):
    """Synchronous sink for progress events."""

    def __call__(self, event: ProgressEvent) -> None:
        """Receive one progress event."""


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for command-line runs."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )
