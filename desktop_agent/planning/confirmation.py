"""Confirmation gate for generated action plans.

At most one plan message can await a decision at a time. The gate moves
from NONE to PENDING when a plan is shown and back to NONE on confirm or
cancel. Decisions for any other message id are ignored.
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    NONE = "none"
    PENDING = "pending"


class GateBusyError(Exception):
    """A plan is already awaiting confirmation."""


class ConfirmationGate:
    """Tracks the single message whose plan awaits the user's decision."""

    def __init__(self) -> None:
        self._pending_id: int | None = None

    @property
    def pending_id(self) -> int | None:
        return self._pending_id

    @property
    def is_pending(self) -> bool:
        return self._pending_id is not None

    @property
    def state(self) -> GateState:
        return GateState.PENDING if self.is_pending else GateState.NONE

    def open(self, message_id: int) -> None:
        """Record ``message_id`` as awaiting a decision.

        Raises:
            GateBusyError: if another plan is still pending.
        """
        if self._pending_id is not None:
            raise GateBusyError(f"Message {self._pending_id} is still awaiting confirmation")
        self._pending_id = message_id
        logger.info("Plan message %d awaiting confirmation", message_id)

    def _resolve(self, message_id: int, outcome: str) -> bool:
        if self._pending_id is None or self._pending_id != message_id:
            logger.debug(
                "Ignoring %s for message %s (pending=%s)", outcome, message_id, self._pending_id
            )
            return False
        self._pending_id = None
        logger.info("Plan message %d %s", message_id, outcome)
        return True

    def confirm(self, message_id: int) -> bool:
        """Resolve the pending plan as confirmed.

        Returns True if ``message_id`` was pending, False otherwise.
        """
        return self._resolve(message_id, "confirmed")

    def cancel(self, message_id: int) -> bool:
        """Resolve the pending plan as cancelled.

        Returns True if ``message_id`` was pending, False otherwise.
        """
        return self._resolve(message_id, "cancelled")
