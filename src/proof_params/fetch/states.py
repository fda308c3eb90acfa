"""Per-identifier fetch state machine.

Each identifier moves ``pending -> downloading -> verifying`` and ends
``verified`` or ``failed``, passing through ``retrying`` after a transient
transfer failure or a failed verification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional


class FetchState(StrEnum):
    """Lifecycle of one identifier within a fetch run."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    RETRYING = "retrying"
    FAILED = "failed"


TERMINAL_STATES: frozenset[FetchState] = frozenset({FetchState.VERIFIED, FetchState.FAILED})

ALLOWED_TRANSITIONS: frozenset[tuple[FetchState, FetchState]] = frozenset(
    {
        (FetchState.PENDING, FetchState.DOWNLOADING),
        (FetchState.PENDING, FetchState.VERIFYING),
        (FetchState.PENDING, FetchState.FAILED),
        (FetchState.DOWNLOADING, FetchState.VERIFYING),
        (FetchState.DOWNLOADING, FetchState.RETRYING),
        (FetchState.DOWNLOADING, FetchState.FAILED),
        (FetchState.VERIFYING, FetchState.VERIFIED),
        (FetchState.VERIFYING, FetchState.RETRYING),
        (FetchState.VERIFYING, FetchState.FAILED),
        (FetchState.RETRYING, FetchState.DOWNLOADING),
        (FetchState.RETRYING, FetchState.FAILED),
    }
)


class InvalidTransition(RuntimeError):
    """A fetch tried to move between states the table does not allow."""

    def __init__(self, identifier: str, from_state: FetchState, to_state: FetchState):
        self.identifier = identifier
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"{identifier}: illegal transition {from_state} -> {to_state}")


def is_terminal(state: FetchState) -> bool:
    return state in TERMINAL_STATES


@dataclass
class FetchOutcome:
    """Result of fetching one identifier.

    Attributes:
        identifier: Manifest identifier
        state: Current (after the run, terminal) state
        history: Every state visited, starting with ``pending``
        attempts: Download attempts made
        bytes_downloaded: Bytes received over the network this run
        error: Last error message, if any
    """

    identifier: str
    state: FetchState = FetchState.PENDING
    history: list[FetchState] = field(default_factory=lambda: [FetchState.PENDING])
    attempts: int = 0
    bytes_downloaded: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == FetchState.VERIFIED

    @property
    def retried(self) -> bool:
        return FetchState.RETRYING in self.history

    def transition(self, to_state: FetchState) -> None:
        """Move to ``to_state``, enforcing the transition table."""
        if (self.state, to_state) not in ALLOWED_TRANSITIONS:
            raise InvalidTransition(self.identifier, self.state, to_state)
        self.state = to_state
        self.history.append(to_state)

    def fail(self, error: str) -> FetchOutcome:
        self.error = error
        self.transition(FetchState.FAILED)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "state": str(self.state),
            "history": [str(s) for s in self.history],
            "attempts": self.attempts,
            "bytes_downloaded": self.bytes_downloaded,
            "error": self.error,
        }
