"""Cooperative cancellation shared by a job and every step it runs."""
from __future__ import annotations

import threading


class CancellationToken:
    """
    Flag a running job can observe between batches.

    Cancelling never interrupts a commit in progress; the engine checks the
    token before each chunk and each dependency page and stops cleanly.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


def ensure_token(token: CancellationToken | None) -> CancellationToken:
    """Return ``token``, or a fresh token that is never cancelled."""
    return token if token is not None else CancellationToken()
