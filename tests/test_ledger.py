"""
Tests for the position ledger lifecycle.
"""
import pytest

from src.account import ledger
from src.account.events import EventKind
from src.account.ledger import PositionIds
from src.domain.errors import (
    InsufficientBalance,
    InvalidCloseState,
    InvalidRequest,
    LimitOrderCapExceeded,
    PositionNotFound,
)
from src.domain.markets import CloseReason, Market, OrderKind, Side


def open_long(account, amount=100.0, leverage=10.0, price=50000.0, order_kind=OrderKind.MARKET, position_id=1):
    return ledger.open_futures(account, "BTC", Side.LONG, order_kind, amount, leverage, price, position_id)


class TestOpen:
    """Tests for opening positions."""

    def test_futures_open_reserves_margin(self, funded_account):
        result = open_long(funded_account)
        assert result.account.balance(Market.FUTURES) == 900.0
        position = result.account.open_positions(Market.FUTURES)[0]
        assert position.entry_price == 50000.0
        assert position.pending_activation is False
        assert position.take_profit is None and position.stop_loss is None

    def test_limit_open_also_reserves_margin(self, funded_account):
        result = open_long(funded_account, order_kind=OrderKind.LIMIT)
        assert result.account.balance(Market.FUTURES) == 900.0
        assert result.position.pending_activation is True

    def test_original_account_untouched(self, funded_account):
        open_long(funded_account)
        assert funded_account.balance(Market.FUTURES) == 1000.0
        assert funded_account.open_positions(Market.FUTURES) == []

    def test_open_event_carries_liquidation_estimate(self, funded_account):
        result = open_long(funded_account)
        event = result.events[0]
        assert event.kind == EventKind.POSITION_OPENED
        assert event.details["liquidation_price"] == pytest.approx(46000.0)

    def test_insufficient_balance(self, funded_account):
        with pytest.raises(InsufficientBalance):
            open_long(funded_account, amount=1000.01)

    def test_whole_balance_allowed(self, funded_account):
        assert open_long(funded_account, amount=1000.0).account.balance(Market.FUTURES) == 0.0

    def test_sixth_pending_limit_rejected(self, funded_account):
        account = funded_account
        for i in range(5):
            account = open_long(account, amount=10.0, order_kind=OrderKind.LIMIT, position_id=i + 1).account
        with pytest.raises(LimitOrderCapExceeded):
            open_long(account, amount=10.0, order_kind=OrderKind.LIMIT, position_id=6)
        # market orders are not capped
        assert len(open_long(account, amount=10.0, position_id=7).account.open_positions(Market.FUTURES)) == 6

    def test_activation_frees_a_limit_slot(self, funded_account):
        account = funded_account
        for i in range(5):
            account = open_long(account, amount=10.0, order_kind=OrderKind.LIMIT, position_id=i + 1).account
        account = ledger.activate(account, 1).account
        result = open_long(account, amount=10.0, order_kind=OrderKind.LIMIT, position_id=6)
        assert result.account.pending_count(Market.FUTURES) == 5

    @pytest.mark.parametrize("kwargs", [
        {"amount": 0.0},
        {"amount": -5.0},
        {"leverage": 0.5},
        {"leverage": float("inf")},
        {"leverage": float("nan")},
        {"amount": float("inf")},
    ])
    def test_invalid_futures_requests(self, funded_account, kwargs):
        with pytest.raises(InvalidRequest):
            open_long(funded_account, **kwargs)

    def test_unknown_asset_and_wrong_side(self, funded_account):
        with pytest.raises(InvalidRequest):
            ledger.open_futures(funded_account, "DOGE", Side.LONG, OrderKind.MARKET, 10.0, 1.0, 1.0, 1)
        with pytest.raises(InvalidRequest):
            ledger.open_futures(funded_account, "BTC", Side.BUY, OrderKind.MARKET, 10.0, 1.0, 1.0, 1)

    def test_ids_never_collide_with_existing(self, funded_account):
        account = open_long(funded_account, position_id=500).account
        result = open_long(account, position_id=10)
        assert result.position.id == 501

    def test_spot_buy_debits_cost(self, funded_account):
        result = ledger.open_spot(funded_account, "ETH", Side.BUY, OrderKind.MARKET, 2.0, 3000.0, 1)
        assert result.account.balance(Market.SPOT) == 94000.0

    def test_spot_buy_insufficient(self, funded_account):
        with pytest.raises(InsufficientBalance):
            ledger.open_spot(funded_account, "BTC", Side.BUY, OrderKind.MARKET, 3.0, 50000.0, 1)

    def test_spot_sell_credits_proceeds(self, funded_account):
        result = ledger.open_spot(funded_account, "BTC", Side.SELL, OrderKind.MARKET, 3.0, 50000.0, 1)
        assert result.account.balance(Market.SPOT) == 250000.0


class TestModify:
    """Tests for activation and TP/SL updates."""

    def test_activate_futures_and_spot(self, funded_account):
        account = open_long(funded_account, order_kind=OrderKind.LIMIT, position_id=1).account
        account = ledger.open_spot(account, "ETH", Side.BUY, OrderKind.LIMIT, 1.0, 3000.0, 2).account

        account = ledger.activate(account, 1).account
        account = ledger.activate(account, 2).account

        assert account.get_position(1).pending_activation is False
        assert account.get_position(2).pending_activation is False
        assert account.balance(Market.FUTURES) == 900.0

    def test_activate_missing(self, funded_account):
        with pytest.raises(PositionNotFound):
            ledger.activate(funded_account, 42)

    def test_set_tp_sl_events_only_on_change(self, funded_account):
        account = open_long(funded_account).account
        result = ledger.set_tp_sl(account, 1, 60000.0, None)
        assert [e.kind for e in result.events] == [EventKind.TAKE_PROFIT_SET]

        result = ledger.set_tp_sl(result.account, 1, 60000.0, 45000.0)
        assert [e.kind for e in result.events] == [EventKind.STOP_LOSS_SET]
        assert result.position.take_profit == 60000.0
        assert result.position.stop_loss == 45000.0

        assert ledger.set_tp_sl(result.account, 1, 60000.0, 45000.0).events == []

    def test_set_tp_sl_spot_position_not_found(self, funded_account):
        account = ledger.open_spot(funded_account, "ETH", Side.BUY, OrderKind.MARKET, 1.0, 3000.0, 1).account
        with pytest.raises(PositionNotFound):
            ledger.set_tp_sl(account, 1, 4000.0, None)


class TestClose:
    """Tests for full closes."""

    def test_full_close_example(self, funded_account):
        account = open_long(funded_account).account
        result = ledger.close_futures(account, 1, 55000.0)

        assert result.pnl == pytest.approx(100.0)
        assert result.account.balance(Market.FUTURES) == pytest.approx(1100.0)
        assert result.account.open_positions(Market.FUTURES) == []
        closed = result.account.closed_positions(Market.FUTURES)[0]
        assert closed.exit_price == 55000.0
        assert closed.close_reason == CloseReason.USER_CLOSE
        assert result.events[0].kind == EventKind.POSITION_CLOSED

    def test_liquidation(self, funded_account):
        account = open_long(funded_account).account
        result = ledger.close_futures(account, 1, 70000.0, CloseReason.LIQUIDATION)
        assert result.pnl == -100.0
        assert result.account.balance(Market.FUTURES) == 900.0

    def test_pending_limit_refunds_margin(self, funded_account):
        account = open_long(funded_account, order_kind=OrderKind.LIMIT).account
        result = ledger.close_futures(account, 1, 80000.0)
        assert result.pnl == 0.0
        assert result.account.balance(Market.FUTURES) == 1000.0

    def test_close_missing(self, funded_account):
        with pytest.raises(PositionNotFound):
            ledger.close_futures(funded_account, 1, 50000.0)

    def test_spot_limit_withdrawn(self, funded_account):
        account = ledger.open_spot(funded_account, "ETH", Side.BUY, OrderKind.LIMIT, 2.0, 3000.0, 1).account
        result = ledger.close_spot(account, 1, 3100.0)
        assert result.account.balance(Market.SPOT) == 100000.0
        closed = result.account.closed_positions(Market.SPOT)[0]
        assert closed.exit_price == 3100.0
        assert closed.realized_pnl is None

    def test_spot_sell_limit_withdrawn(self, funded_account):
        account = ledger.open_spot(funded_account, "ETH", Side.SELL, OrderKind.LIMIT, 2.0, 3000.0, 1).account
        assert ledger.close_spot(account, 1, 3100.0).account.balance(Market.SPOT) == 100000.0

    def test_filled_spot_cannot_close(self, funded_account):
        account = ledger.open_spot(funded_account, "ETH", Side.BUY, OrderKind.MARKET, 2.0, 3000.0, 1).account
        with pytest.raises(InvalidCloseState):
            ledger.close_spot(account, 1, 3100.0)

        limit = ledger.open_spot(funded_account, "ETH", Side.BUY, OrderKind.LIMIT, 2.0, 3000.0, 1).account
        limit = ledger.activate(limit, 1).account
        with pytest.raises(InvalidCloseState):
            ledger.close_spot(limit, 1, 3100.0)


class TestPartialClose:
    """Tests for partial closes."""

    def test_partial_close_keeps_position(self, funded_account):
        account = open_long(funded_account).account
        result = ledger.partial_close(account, 1, 25, 55000.0)

        assert result.pnl == pytest.approx(25.0)
        assert result.account.balance(Market.FUTURES) == pytest.approx(950.0)
        assert result.account.open_positions(Market.FUTURES)[0].amount == pytest.approx(75.0)
        closed = result.account.closed_positions(Market.FUTURES)[0]
        assert closed.position.amount == pytest.approx(25.0)
        assert closed.close_reason == CloseReason.PARTIAL_CLOSE
        assert result.events[0].kind == EventKind.POSITION_PARTIALLY_CLOSED

    @pytest.mark.parametrize("percent", [10, 33.3, 50, 90])
    def test_partial_then_rest_matches_full_close(self, funded_account, percent):
        account = open_long(funded_account).account
        full = ledger.close_futures(account, 1, 53210.0)

        first = ledger.partial_close(account, 1, percent, 53210.0)
        second = ledger.close_futures(first.account, 1, 53210.0)

        assert first.pnl + second.pnl == pytest.approx(full.pnl)
        assert second.account.balance(Market.FUTURES) == pytest.approx(full.account.balance(Market.FUTURES))

    def test_hundred_percent_removes_position(self, funded_account):
        account = open_long(funded_account).account
        result = ledger.partial_close(account, 1, 100, 55000.0)
        full = ledger.close_futures(account, 1, 55000.0)

        assert result.account.open_positions(Market.FUTURES) == []
        assert result.account.balance(Market.FUTURES) == pytest.approx(full.account.balance(Market.FUTURES))
        assert result.closed.close_reason == CloseReason.PARTIAL_CLOSE

    @pytest.mark.parametrize("percent", [0, -10, 100.5])
    def test_percent_out_of_range(self, funded_account, percent):
        account = open_long(funded_account).account
        with pytest.raises(InvalidRequest):
            ledger.partial_close(account, 1, percent, 55000.0)

    def test_partial_close_pending_limit(self, funded_account):
        account = open_long(funded_account, order_kind=OrderKind.LIMIT).account
        result = ledger.partial_close(account, 1, 40, 60000.0)
        assert result.pnl == 0.0
        assert result.account.balance(Market.FUTURES) == pytest.approx(940.0)


class TestPositionIds:
    """Tests for PositionIds."""

    def test_strictly_increasing(self):
        ids = PositionIds()
        generated = [ids.next_id() for _ in range(100)]
        assert generated == sorted(set(generated))

    def test_floor(self):
        ids = PositionIds()
        assert ids.next_id(floor=10**15) == 10**15 + 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
