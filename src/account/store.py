"""
Account stores - whole-map load/save persistence for accounts and withdrawal requests.
"""
import copy
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Union

from loguru import logger

from .account import Account


@dataclass(frozen=True)
class WithdrawalRequest:
    """Withdrawal asked for by a user, processed off-line by an operator."""
    username: str
    address: str
    amount: float
    requested_at: str  # ISO-8601 UTC


class AccountStore(ABC):
    """
    Durable mapping username -> Account.
    Reads and writes the whole mapping at once; there are no partial updates.
    """

    @abstractmethod
    def load(self) -> Dict[str, Account]:
        pass

    @abstractmethod
    def save(self, accounts: Dict[str, Account]) -> None:
        pass

    @abstractmethod
    def load_withdrawals(self) -> List[WithdrawalRequest]:
        pass

    @abstractmethod
    def save_withdrawals(self, requests: List[WithdrawalRequest]) -> None:
        pass


class InMemoryAccountStore(AccountStore):
    """Store kept in process memory. Hands out copies, like a real store would."""

    def __init__(self, accounts: Union[Dict[str, Account], None] = None):
        self._accounts: Dict[str, Account] = copy.deepcopy(accounts or {})
        self._withdrawals: List[WithdrawalRequest] = []
        self._lock = threading.Lock()

    def load(self) -> Dict[str, Account]:
        with self._lock:
            return copy.deepcopy(self._accounts)

    def save(self, accounts: Dict[str, Account]) -> None:
        with self._lock:
            self._accounts = copy.deepcopy(accounts)

    def load_withdrawals(self) -> List[WithdrawalRequest]:
        with self._lock:
            return list(self._withdrawals)

    def save_withdrawals(self, requests: List[WithdrawalRequest]) -> None:
        with self._lock:
            self._withdrawals = list(requests)


def _write_json_atomic(path: Path, data: Any) -> None:
    """Write to a temp file next to `path`, then rename over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class JsonFileAccountStore(AccountStore):
    """
    Accounts in one JSON file, withdrawal requests in a second one.
    A missing file reads as empty.
    """

    def __init__(
        self,
        path: Union[str, Path] = "users.json",
        withdrawals_path: Union[str, Path, None] = None,
    ):
        self.path = Path(path)
        self.withdrawals_path = (
            Path(withdrawals_path)
            if withdrawals_path is not None
            else self.path.with_name("withdrawal_requests.json")
        )
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"JsonFileAccountStore({self.path})"

    def load(self) -> Dict[str, Account]:
        with self._lock:
            raw = _read_json(self.path, {})
        return {username: Account.from_dict(data) for username, data in raw.items()}

    def save(self, accounts: Dict[str, Account]) -> None:
        data = {username: account.to_dict() for username, account in accounts.items()}
        with self._lock:
            _write_json_atomic(self.path, data)
        logger.debug(f"Saved {len(data)} accounts to {self.path}")

    def load_withdrawals(self) -> List[WithdrawalRequest]:
        with self._lock:
            raw = _read_json(self.withdrawals_path, [])
        return [WithdrawalRequest(**r) for r in raw]

    def save_withdrawals(self, requests: List[WithdrawalRequest]) -> None:
        with self._lock:
            _write_json_atomic(self.withdrawals_path, [asdict(r) for r in requests])
