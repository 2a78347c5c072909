"""Transaction records - synchronization state and confirmed results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class TxState(str, Enum):
    """Synchronization lifecycle status of a submitted transaction."""

    SUBMITTED = "submitted"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid synchronization state transition."""

    pass


@dataclass
class PendingTransaction:
    """Client-side view of one transaction being synchronized."""

    tx_hash: str
    status: TxState = TxState.SUBMITTED
    polls: int = 0
    receipt: Optional[Mapping[str, Any]] = None

    def mark_pending(self) -> None:
        """Transition from submitted to pending.

        Raises:
            InvalidStateTransition: If current status is not submitted
        """
        if self.status != TxState.SUBMITTED:
            raise InvalidStateTransition(
                f"Cannot mark pending from {self.status.value}. "
                "Transaction must be in submitted state."
            )
        self.status = TxState.PENDING

    def mark_confirmed(self, receipt: Mapping[str, Any]) -> None:
        """Transition from pending to confirmed.

        Args:
            receipt: Final receipt (must carry a block number)

        Raises:
            InvalidStateTransition: If current status is not pending
            ValueError: If the receipt has no block number
        """
        if self.status != TxState.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark confirmed from {self.status.value}. "
                "Transaction must be in pending state."
            )
        if not is_final_receipt(receipt):
            raise ValueError("receipt must carry a block number")
        self.receipt = receipt
        self.status = TxState.CONFIRMED

    def mark_timed_out(self) -> None:
        """Transition from pending to timed out.

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != TxState.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark timed out from {self.status.value}. "
                "Transaction must be in pending state."
            )
        self.status = TxState.TIMED_OUT


def is_final_receipt(receipt: Optional[Mapping[str, Any]]) -> bool:
    """A receipt is final once it carries a non-null block reference."""
    return receipt is not None and receipt.get("blockNumber") is not None


@dataclass(frozen=True)
class DecodedLog:
    """One receipt log, decoded when its topic matched a known event.

    ``event`` is None for logs that could not be decoded; raw fields
    (``topics``, ``data``) are always preserved.
    """

    event: Optional[str]
    args: Mapping[str, Any]
    address: Optional[str]
    transaction_hash: Optional[str]
    block_number: Optional[int]
    log_index: Optional[int]
    topics: tuple[str, ...] = ()
    data: str = "0x"
    signature: Optional[str] = None

    @property
    def decoded(self) -> bool:
        return self.event is not None


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of a synchronized transaction."""

    tx: str
    receipt: Mapping[str, Any]
    logs: tuple[DecodedLog, ...] = field(default_factory=tuple)

    @property
    def block_number(self) -> int:
        return self.receipt["blockNumber"]

    @property
    def status(self) -> Optional[int]:
        """Receipt status (1 success, 0 reverted), None for pre-Byzantium receipts."""
        status = self.receipt.get("status")
        if status is None:
            return None
        if isinstance(status, str):
            return int(status, 16)
        return int(status)

    @property
    def succeeded(self) -> bool:
        return self.status != 0

    def events_named(self, name: str) -> list[DecodedLog]:
        return [log for log in self.logs if log.event == name]
