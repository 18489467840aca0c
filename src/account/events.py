"""
Ledger events - what happened, returned by the ledger for the caller to dispatch.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class EventKind(str, Enum):
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    POSITION_PARTIALLY_CLOSED = "position_partially_closed"
    TAKE_PROFIT_SET = "take_profit_set"
    STOP_LOSS_SET = "stop_loss_set"
    WITHDRAWAL_REQUESTED = "withdrawal_requested"


SUBJECTS = {
    EventKind.POSITION_OPENED: "New Position Opened",
    EventKind.POSITION_CLOSED: "Position closed",
    EventKind.POSITION_PARTIALLY_CLOSED: "Position partially closed",
    EventKind.TAKE_PROFIT_SET: "Position TP set",
    EventKind.STOP_LOSS_SET: "Position SL set",
    EventKind.WITHDRAWAL_REQUESTED: "New Withdrawal Request",
}


@dataclass(frozen=True)
class LedgerEvent:
    kind: EventKind
    username: str
    position_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def subject(self) -> str:
        return SUBJECTS[self.kind]

    def describe(self) -> str:
        """One-line human readable message."""
        d = self.details
        if self.kind == EventKind.POSITION_OPENED:
            return (
                f"{self.position_id} user {self.username} opened {d.get('side')} "
                f"{d.get('order_kind')} {d.get('asset')} Amount: {d.get('amount')} "
                f"Leverage: {d.get('leverage')} Entry: {d.get('entry_price')} "
                f"Liquidation: {d.get('liquidation_price')}"
            )
        if self.kind == EventKind.POSITION_CLOSED:
            return f"{self.position_id} user {self.username} closes position, Exit price: {d.get('exit_price')}"
        if self.kind == EventKind.POSITION_PARTIALLY_CLOSED:
            return (
                f"{self.position_id} user {self.username} partially closes position "
                f"({d.get('percent')}%), Exit price: {d.get('exit_price')}"
            )
        if self.kind == EventKind.TAKE_PROFIT_SET:
            return f"{self.position_id} user {self.username} set tp {d.get('take_profit')}"
        if self.kind == EventKind.STOP_LOSS_SET:
            return f"{self.position_id} user {self.username} set sl {d.get('stop_loss')}"
        return (
            f"User {self.username} has requested a withdrawal on the exchange. "
            f"Amount: {d.get('amount')} Address: {d.get('address')}"
        )
