"""Curator governance: the identity gate and two-step curator transfer.

A single curator may mutate the ledger. Handing that role to someone else is
a two-step protocol so that a mistyped or unreachable address can never end
up holding it:

    STABLE ──initiate──▶ PENDING ──accept──▶ STABLE
                           │  ▲
                           └──┘ initiate (replaces the nominee)

The outgoing curator keeps full authority until the nominee accepts.

``CuratorState`` is a plain value owned by the ledger; ``CuratorGovernance``
operates on it by reference under the ledger's lock and announces each
transition before releasing it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple

from codex.events import CuratorTransferAccepted, CuratorTransferInitiated, Event, EventBus
from codex.hardening import (
    AccessDenied,
    InvalidTarget,
    InvariantChecker,
    Validators,
)
from codex.observability import LogLayer, get_logger

logger = get_logger("governance", LogLayer.GOVERNANCE)


class TransferPhase(Enum):
    STABLE = "stable"
    PENDING = "pending"


VALID_TRANSITIONS: Dict[Enum, Set[Enum]] = {
    TransferPhase.STABLE: {TransferPhase.PENDING},
    TransferPhase.PENDING: {TransferPhase.PENDING, TransferPhase.STABLE},
}


@dataclass
class CuratorState:
    """Current curator and the nominee awaiting acceptance, if any."""
    curator: str
    pending_curator: Optional[str] = None

    @property
    def phase(self) -> TransferPhase:
        return TransferPhase.STABLE if self.pending_curator is None else TransferPhase.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "curator": self.curator,
            "pending_curator": self.pending_curator,
            "phase": self.phase.value,
        }


def normalize_caller(caller: Any) -> str:
    """Lowercased caller address, or "" when it cannot be an address at all."""
    if not isinstance(caller, str):
        return ""
    return caller.strip().lower()


class CuratorGovernance:
    """Gate and transfer protocol over a shared ``CuratorState``."""

    def __init__(
        self,
        state: CuratorState,
        *,
        lock: Optional[threading.RLock] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.state = state
        self._lock = lock or threading.RLock()
        self._event_bus = event_bus

    def require_curator(self, caller: Any, action: str) -> str:
        """Return the normalized caller, or raise AccessDenied if it is not the curator."""
        who = normalize_caller(caller)
        if not who or who != self.state.curator:
            logger.warning(
                "Rejected non-curator call",
                error_code="AccessDenied",
                caller=str(caller),
                action=action,
            )
            raise AccessDenied(str(caller), action)
        return who

    def initiate_curator_transfer(self, caller: Any, new_curator: Any) -> CuratorTransferInitiated:
        """Nominate ``new_curator``; replaces any earlier nominee."""
        with self._lock:
            self.require_curator(caller, "initiate curator transfer")

            result = Validators.validate_identity(new_curator, "new_curator")
            if not result.is_valid:
                logger.warning(
                    "Rejected curator transfer target",
                    error_code="InvalidTarget",
                    target=str(new_curator),
                )
                raise InvalidTarget(new_curator, result.errors[0].message)
            nominee = result.sanitized_value
            if nominee == self.state.curator:
                logger.warning(
                    "Rejected curator transfer target",
                    error_code="InvalidTarget",
                    target=nominee,
                )
                raise InvalidTarget(new_curator, "already the curator")

            InvariantChecker.check_state_transition(
                self.state.phase, TransferPhase.PENDING, VALID_TRANSITIONS
            )
            replaced = self.state.pending_curator
            self.state.pending_curator = nominee
            event = CuratorTransferInitiated(previous_curator=self.state.curator, nominee=nominee)

            logger.info(
                "Curator transfer initiated",
                operation="initiate_curator_transfer",
                curator=event.previous_curator,
                nominee=nominee,
                replaced_nominee=replaced or "",
            )
            self._publish(event)
        return event

    def accept_curator_transfer(self, caller: Any) -> CuratorTransferAccepted:
        """Complete a pending transfer; only the nominee may call this."""
        with self._lock:
            who = normalize_caller(caller)
            pending = self.state.pending_curator
            if pending is None or not who or who != pending:
                logger.warning(
                    "Rejected curator transfer acceptance",
                    error_code="AccessDenied",
                    caller=str(caller),
                    phase=self.state.phase.value,
                )
                raise AccessDenied(str(caller), "accept curator transfer")

            InvariantChecker.check_state_transition(
                self.state.phase, TransferPhase.STABLE, VALID_TRANSITIONS
            )
            previous = self.state.curator
            self.state.curator = pending
            self.state.pending_curator = None
            event = CuratorTransferAccepted(previous_curator=previous, new_curator=pending)

            logger.info(
                "Curator transfer accepted",
                operation="accept_curator_transfer",
                previous_curator=previous,
                new_curator=pending,
            )
            self._publish(event)
        return event

    def snapshot(self) -> Tuple[str, Optional[str]]:
        with self._lock:
            return self.state.curator, self.state.pending_curator

    def _publish(self, event: Event) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)
