"""
Queue-backed approval channel.

Decisions are pre-loaded (tests, scripted runs) and handed out in order.
When the queue is empty the checkpoint stays pending and the run pauses
until resume() supplies a decision.
"""

import threading
from collections import deque

from phasegate.domain.interfaces import ApprovalChannelInterface
from phasegate.domain.models import Checkpoint, Decision, Resolution


class QueueApprovalChannel(ApprovalChannelInterface):
    """Answers checkpoints from a FIFO of pre-loaded resolutions."""

    def __init__(self, resolutions: list[Resolution] | None = None):
        self._pending: deque[Resolution] = deque(resolutions or [])
        self._notified: list[Checkpoint] = []
        self._lock = threading.Lock()

    def push(self, decision: Decision, payload: dict | None = None) -> None:
        with self._lock:
            self._pending.append(Resolution(decision=decision, payload=payload or {}))

    def notify(self, checkpoint: Checkpoint) -> Resolution | None:
        with self._lock:
            self._notified.append(checkpoint)
            if not self._pending:
                return None
            return self._pending.popleft()

    @property
    def notified(self) -> list[Checkpoint]:
        """Checkpoints seen by this channel, in order."""
        with self._lock:
            return list(self._notified)
