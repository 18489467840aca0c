"""
Ledger service - request-level entry point tying store, prices, ledger and notifiers together.
"""
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional

from loguru import logger

from ..account import ledger
from ..account.account import Account
from ..account.events import EventKind, LedgerEvent
from ..account.ledger import LedgerResult, PositionIds, now_ms
from ..account.settlement import unrealized_pnl
from ..account.store import AccountStore, JsonFileAccountStore, WithdrawalRequest
from ..data.price_cache import PriceCache
from ..data.quote_source import MexcQuoteSource
from ..domain.errors import AccountExists, AccountNotFound, InvalidRequest, PositionNotFound, PriceUnavailable
from ..domain.markets import MAX_PENDING_LIMIT_ORDERS, CloseReason, Market, OrderKind, Side
from ..domain.positions import AnyPosition, ClosedPosition, SpotPosition
from ..domain.quotes import Quote
from .config import LedgerConfig
from .notifications import CompositeNotifier, EmailNotifier, LoggingNotifier, Notifier


@dataclass
class OpenResult:
    open_positions: List[AnyPosition]
    new_balance: float
    position: AnyPosition


@dataclass
class CloseResult:
    open_positions: List[AnyPosition]
    new_balance: float
    profit_loss: Optional[float]
    closed: ClosedPosition


@dataclass
class BalanceResult:
    username: str
    balances: Dict[Market, float]
    address: Optional[str] = None


@dataclass
class PositionsView:
    open: Dict[Market, List[AnyPosition]] = field(default_factory=dict)
    closed: Dict[Market, List[ClosedPosition]] = field(default_factory=dict)


class LedgerService:
    """
    Runs ledger operations for authenticated usernames.

    Mutations of one account are serialized by a per-username lock: load,
    price, compute and save happen inside it. Saving re-reads the store under
    a commit lock and replaces only that user's entry, so concurrent writes
    for different users do not overwrite each other. Events are dispatched
    after the save; notifier failures are logged and never fail the request.
    """

    def __init__(
        self,
        store: AccountStore,
        prices: PriceCache,
        notifier: Optional[Notifier] = None,
        ids: Optional[PositionIds] = None,
        max_pending_limit_orders: int = MAX_PENDING_LIMIT_ORDERS,
    ):
        self.store = store
        self.prices = prices
        self.notifier = notifier or LoggingNotifier()
        self.ids = ids or PositionIds()
        self.max_pending_limit_orders = max_pending_limit_orders

        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._commit_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: LedgerConfig) -> "LedgerService":
        source = MexcQuoteSource(
            futures_url=config.futures_ticker_url,
            spot_url=config.spot_ticker_url,
            timeout=config.quote_timeout,
        )
        notifiers: List[Notifier] = [LoggingNotifier()]
        if config.email_enabled:
            notifiers.append(EmailNotifier(
                smtp_server=config.smtp_server,
                admin_email=config.admin_email,
                smtp_port=config.smtp_port,
                smtp_username=config.smtp_username,
                smtp_password=config.smtp_password,
                from_email=config.from_email,
            ))
        return cls(
            store=JsonFileAccountStore(config.store_path, config.withdrawals_path),
            prices=PriceCache(source),
            notifier=CompositeNotifier(notifiers),
            max_pending_limit_orders=config.max_pending_limit_orders,
        )

    # ---------------------------------------------------------------------
    # LOCKING / PERSISTENCE
    # ---------------------------------------------------------------------

    @contextmanager
    def _account_lock(self, username: str) -> Iterator[None]:
        with self._registry_lock:
            lock = self._locks.setdefault(username, threading.Lock())
        with lock:
            yield

    def _load(self, username: str) -> Account:
        account = self.store.load().get(username)
        if account is None:
            raise AccountNotFound(f"User not found: {username}", username)
        return account

    def _commit(self, account: Account) -> None:
        with self._commit_lock:
            accounts = self.store.load()
            accounts[account.username] = account
            self.store.save(accounts)

    def _dispatch(self, events: List[LedgerEvent]) -> None:
        for event in events:
            try:
                self.notifier.notify(event)
            except Exception as e:
                logger.error(f"Notification {event.kind.value} for {event.username} failed: {e}")

    def _mutate(self, username: str, operation: Callable[[Account], LedgerResult]) -> LedgerResult:
        with self._account_lock(username):
            result = operation(self._load(username))
            self._commit(result.account)
        self._dispatch(result.events)
        return result

    # ---------------------------------------------------------------------
    # ACCOUNTS
    # ---------------------------------------------------------------------

    def register(self, username: str, address: Optional[str] = None) -> Account:
        """Create an empty account with zero balances."""
        if not username:
            raise InvalidRequest("Username must not be empty")
        with self._account_lock(username), self._commit_lock:
            accounts = self.store.load()
            if username in accounts:
                raise AccountExists(f"User already exists: {username}", username)
            account = Account(username, address=address)
            accounts[username] = account
            self.store.save(accounts)
        logger.info(f"Registered {username}")
        return account

    def get_balance(self, username: str) -> BalanceResult:
        account = self._load(username)
        return BalanceResult(username, dict(account.balances), account.address)

    def set_balances(
        self,
        username: str,
        futures: Optional[float] = None,
        spot: Optional[float] = None,
    ) -> BalanceResult:
        """Administrative balance override, e.g. after crediting a deposit."""
        def operation(account: Account) -> LedgerResult:
            account = account.copy()
            for market, value in ((Market.FUTURES, futures), (Market.SPOT, spot)):
                if value is not None:
                    account.balances[market] = float(value)
            return LedgerResult(account=account)

        result = self._mutate(username, operation)
        logger.info(f"Balances of {username} set to {result.account.balances}")
        return BalanceResult(username, dict(result.account.balances), result.account.address)

    def request_withdrawal(self, username: str, address: str, amount: float) -> WithdrawalRequest:
        """Log a withdrawal request for an operator. The balance is left untouched."""
        if not amount > 0:
            raise InvalidRequest(f"Withdrawal amount must be positive, got {amount}", username)
        self._load(username)

        request = WithdrawalRequest(
            username=username,
            address=address,
            amount=amount,
            requested_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._commit_lock:
            requests = self.store.load_withdrawals()
            requests.append(request)
            self.store.save_withdrawals(requests)

        self._dispatch([LedgerEvent(
            kind=EventKind.WITHDRAWAL_REQUESTED,
            username=username,
            details={"address": address, "amount": amount},
        )])
        return request

    # ---------------------------------------------------------------------
    # POSITIONS
    # ---------------------------------------------------------------------

    def open_position(
        self,
        username: str,
        market: Market,
        asset_type: str,
        side: Side,
        order_kind: OrderKind,
        amount: float,
        leverage: float = 1.0,
        limit_price: Optional[float] = None,
    ) -> OpenResult:
        def operation(account: Account) -> LedgerResult:
            price = self.prices.get_price(market, asset_type)
            position_id = self.ids.next_id()
            if market == Market.FUTURES:
                return ledger.open_futures(
                    account, asset_type, side, order_kind, amount, leverage, price,
                    position_id, limit_price, self.max_pending_limit_orders,
                )
            return ledger.open_spot(
                account, asset_type, side, order_kind, amount, price,
                position_id, limit_price, self.max_pending_limit_orders,
            )

        result = self._mutate(username, operation)
        return OpenResult(
            open_positions=list(result.account.open_positions(market)),
            new_balance=result.account.balance(market),
            position=result.position,
        )

    def activate(self, username: str, position_id: int) -> PositionsView:
        """Mark a limit order as filled; returns the open positions of both markets."""
        result = self._mutate(username, lambda account: ledger.activate(account, position_id))
        return PositionsView(open={m: list(result.account.open_positions(m)) for m in Market})

    def set_tp_sl(
        self,
        username: str,
        position_id: int,
        take_profit: Optional[float],
        stop_loss: Optional[float],
    ) -> List[AnyPosition]:
        result = self._mutate(
            username,
            lambda account: ledger.set_tp_sl(account, position_id, take_profit, stop_loss),
        )
        return list(result.account.open_positions(Market.FUTURES))

    def close_position(
        self,
        username: str,
        position_id: int,
        reason: CloseReason = CloseReason.USER_CLOSE,
    ) -> CloseResult:
        """Close a futures position, or withdraw an unfilled spot limit order."""
        def operation(account: Account) -> LedgerResult:
            position = account.get_position(position_id)
            if position is None:
                raise PositionNotFound(position_id, username)
            exit_price = self.prices.get_price(position.market, position.asset_type)
            if isinstance(position, SpotPosition):
                return ledger.close_spot(account, position_id, exit_price, now_ms())
            return ledger.close_futures(account, position_id, exit_price, reason, now_ms())

        result = self._mutate(username, operation)
        market = result.closed.market
        return CloseResult(
            open_positions=list(result.account.open_positions(market)),
            new_balance=result.account.balance(market),
            profit_loss=result.pnl,
            closed=result.closed,
        )

    def partial_close(self, username: str, position_id: int, percent: float) -> CloseResult:
        def operation(account: Account) -> LedgerResult:
            found = account.find_position(position_id, Market.FUTURES)
            if found is None:
                raise PositionNotFound(position_id, username)
            position = account.open_positions(Market.FUTURES)[found[1]]
            exit_price = self.prices.get_price(Market.FUTURES, position.asset_type)
            return ledger.partial_close(account, position_id, percent, exit_price, now_ms())

        result = self._mutate(username, operation)
        return CloseResult(
            open_positions=list(result.account.open_positions(Market.FUTURES)),
            new_balance=result.account.balance(Market.FUTURES),
            profit_loss=result.pnl,
            closed=result.closed,
        )

    # ---------------------------------------------------------------------
    # READS
    # ---------------------------------------------------------------------

    def get_positions(self, username: str) -> PositionsView:
        account = self._load(username)
        return PositionsView(
            open={m: list(account.open_positions(m)) for m in Market},
            closed={m: list(account.closed_positions(m)) for m in Market},
        )

    def get_prices(self, market: Market) -> List[Quote]:
        return self.prices.get_prices(market)

    def update_value(self, username: str) -> Dict[Market, float]:
        """
        Recompute and store the account value of each market at current prices.
        Futures: balance + committed margin + unrealized PnL.
        Spot: balance + signed value of open holdings.
        The stored account also reports both totals across markets.
        """
        def operation(account: Account) -> LedgerResult:
            account = account.copy()
            for market in Market:
                positions = account.open_positions(market)
                prices = self._price_map(market) if positions else {}
                value = account.balance(market)
                for position in positions:
                    price = prices.get(position.asset_type)
                    if price is None:
                        raise PriceUnavailable(f"No {market.value} price for {position.asset_type}", username)
                    if market == Market.FUTURES:
                        value += position.amount + unrealized_pnl(position, price)
                    else:
                        mark = position.entry_price if position.pending_activation else price
                        value += position.amount * mark * position.side.direction
                account.values[market] = value
            return LedgerResult(account=account)

        result = self._mutate(username, operation)
        logger.info(
            f"{username} valued at {result.account.total_value:.2f} "
            f"(cash {result.account.total_balance:.2f})"
        )
        return dict(result.account.values)

    def _price_map(self, market: Market) -> Dict[str, float]:
        return {q.asset_type: q.price for q in self.prices.get_prices(market)}
