"""Upload lifecycle state machine.

Tracks one identifier through an upload attempt and enforces valid
transitions, so a record can never be written for an upload that was not
started, nor twice for the same attempt.
"""

from __future__ import annotations

from cloudimg.models import UploadState


class UploadStateMachine:
    """Finite state machine for the uploads of a single identifier.

    Valid transitions::

        UNKNOWN    -> UPLOADING
        UPLOADING  -> UPLOADED | UNKNOWN  (failure, nothing recorded yet)
        UPLOADED   -> UPLOADING           (overwrite)

    A failed overwrite returns from ``UPLOADING`` to ``UPLOADED``: the
    earlier record is still valid.  ``UPLOADED -> UNKNOWN`` only happens
    outside this machine, when the record store is cleared.

    Parameters
    ----------
    identifier:
        The upload identifier being tracked.
    state:
        Initial state, as derived from the record store.
    """

    VALID_TRANSITIONS: dict[UploadState, set[UploadState]] = {
        UploadState.UNKNOWN: {UploadState.UPLOADING},
        UploadState.UPLOADING: {UploadState.UPLOADED, UploadState.UNKNOWN},
        UploadState.UPLOADED: {UploadState.UPLOADING},
    }

    def __init__(self, identifier: str, state: UploadState = UploadState.UNKNOWN) -> None:
        self.identifier: str = identifier
        self.state: UploadState = state
        self.previous: UploadState | None = None

    def transition(self, new_state: UploadState) -> None:
        """Attempt to transition to *new_state*.

        Raises
        ------
        ValueError
            If the transition from the current state to *new_state* is
            not valid.
        """
        allowed = self.VALID_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid state transition: {self.state.value} -> {new_state.value} "
                f"for {self.identifier}. "
                f"Allowed transitions from {self.state.value}: "
                f"{{{', '.join(sorted(s.value for s in allowed))}}}"
            )
        self.previous = self.state
        self.state = new_state

    def begin(self) -> None:
        """Enter ``UPLOADING``."""
        self.transition(UploadState.UPLOADING)

    def succeed(self) -> None:
        """Leave ``UPLOADING`` after the record was written."""
        self.transition(UploadState.UPLOADED)

    def fail(self) -> None:
        """Leave ``UPLOADING`` after a failed attempt.

        Returns to ``UPLOADED`` when the attempt was an overwrite of an
        existing record, else to ``UNKNOWN``.
        """
        if self.state != UploadState.UPLOADING:
            raise ValueError(
                f"Cannot fail {self.identifier} in state {self.state.value}"
            )
        restored = (
            UploadState.UPLOADED
            if self.previous == UploadState.UPLOADED
            else UploadState.UNKNOWN
        )
        self.previous = self.state
        self.state = restored
