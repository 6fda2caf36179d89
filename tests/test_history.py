"""
Unit tests for the historical equity replay.

The replay values past holdings at current prices and reduces invested
capital on sells by the current average cost; the tests pin both
approximations down.
"""

from datetime import date

import pandas as pd
import pytest

from bolsamaster.portfolio.aggregator import Asset, assets_by_ticker
from bolsamaster.portfolio.classifier import AssetType
from bolsamaster.portfolio.history import HistoryPoint, historical_series, history_to_frame
from bolsamaster.portfolio.transaction import (
    create_buy_transaction,
    create_dividend_transaction,
    create_sell_transaction,
)


def make_asset(ticker, quantity, average_cost, current_price):
    return Asset(
        ticker=ticker,
        asset_type=AssetType.STOCK,
        quantity=quantity,
        average_cost=average_cost,
        current_price=current_price,
    )


@pytest.fixture
def ledger():
    return [
        create_buy_transaction("PETR4", 100, 32.50, date(2024, 1, 10)),
        create_buy_transaction("PETR4", 50, 38.00, date(2024, 2, 1), costs=10),
        create_dividend_transaction("PETR4", 99.0, date(2024, 2, 15)),
        create_sell_transaction("PETR4", 60, 40.00, date(2024, 3, 1), costs=5),
    ]


@pytest.fixture
def current_assets():
    return {"PETR4": make_asset("PETR4", 90, 34.40, 40.0)}


class TestHistoricalSeries:
    """Test point generation."""

    def test_one_point_per_trade_date(self, ledger, current_assets):
        points = historical_series(ledger, current_assets)

        assert [p.date for p in points] == [date(2024, 1, 10), date(2024, 2, 1), date(2024, 3, 1)]

    def test_values(self, ledger, current_assets):
        points = historical_series(ledger, current_assets)

        assert [(p.invested, p.equity) for p in points] == [
            (3250, 4000),
            (5160, 6000),
            (3096, 3600),
        ]

    def test_gain_is_equity_minus_invested(self, ledger, current_assets):
        points = historical_series(ledger, current_assets)

        assert [p.gain for p in points] == [750, 840, 504]

    def test_default_label_is_day_month(self, ledger, current_assets):
        assert historical_series(ledger, current_assets)[0].label == "10/01"

    def test_custom_label_format(self, ledger, current_assets):
        points = historical_series(ledger, current_assets, date_format="%Y-%m-%d")

        assert points[-1].label == "2024-03-01"

    def test_only_dividends_is_empty(self):
        ledger = [create_dividend_transaction("ITSA4", 10.0, date(2024, 1, 1))]

        assert historical_series(ledger, {}) == []

    def test_empty_ledger(self):
        assert historical_series([], None) == []

    def test_single_date_yields_single_point(self, current_assets):
        ledger = [
            create_buy_transaction("PETR4", 10, 30.0, date(2024, 1, 10)),
            create_buy_transaction("PETR4", 10, 31.0, date(2024, 1, 10)),
        ]

        points = historical_series(ledger, current_assets)

        assert len(points) == 1
        assert points[0].invested == 610
        assert points[0].equity == 800

    def test_dates_strictly_increasing(self, ledger, current_assets):
        shuffled = [ledger[3], ledger[0], ledger[2], ledger[1]]

        dates = [p.date for p in historical_series(shuffled, current_assets)]

        assert dates == sorted(set(dates))

    def test_fresh_list_each_call(self, ledger, current_assets):
        first = historical_series(ledger, current_assets)
        second = historical_series(ledger, current_assets)

        assert first == second
        assert first is not second

    def test_accepts_asset_list(self, ledger, current_assets):
        as_list = historical_series(ledger, list(current_assets.values()))

        assert as_list == historical_series(ledger, current_assets)


class TestHistoricalApproximations:
    """Test current-price valuation and current-average sell reduction."""

    def test_sell_uses_current_average_not_historical(self):
        """Average at the sell was 10, current average is 20."""
        ledger = [
            create_buy_transaction("VALE3", 10, 10.0, date(2024, 1, 1)),
            create_sell_transaction("VALE3", 5, 12.0, date(2024, 2, 1)),
            create_buy_transaction("VALE3", 5, 30.0, date(2024, 3, 1)),
        ]
        current = assets_by_ticker([make_asset("VALE3", 10, 20.0, 25.0)])

        points = historical_series(ledger, current)

        # 100 - 5 * 20
        assert points[1].invested == 0
        assert points[2].invested == 150

    def test_closed_ticker_sell_uses_sell_price(self):
        ledger = [
            create_buy_transaction("VALE3", 10, 10.0, date(2024, 1, 1)),
            create_sell_transaction("VALE3", 10, 8.0, date(2024, 2, 1)),
        ]

        points = historical_series(ledger, {})

        assert points[1].invested == 20
        assert points[1].equity == 0

    def test_unknown_ticker_valued_at_zero(self):
        ledger = [create_buy_transaction("XPTO3", 10, 10.0, date(2024, 1, 1))]

        point = historical_series(ledger, {})[0]

        assert point.invested == 100
        assert point.equity == 0
        assert point.gain == -100

    def test_invested_floored_at_zero(self):
        ledger = [
            create_buy_transaction("VALE3", 10, 10.0, date(2024, 1, 1)),
            create_sell_transaction("VALE3", 10, 12.0, date(2024, 2, 1)),
        ]
        current = {"VALE3": make_asset("VALE3", 1, 50.0, 60.0)}

        points = historical_series(ledger, current)

        assert points[1].invested == 0

    def test_oversell_clamped(self, current_assets):
        ledger = [
            create_buy_transaction("PETR4", 10, 30.0, date(2024, 1, 1)),
            create_sell_transaction("PETR4", 50, 30.0, date(2024, 2, 1)),
        ]

        points = historical_series(ledger, current_assets)

        assert points[1].equity == 0

    def test_rounds_half_up(self):
        ledger = [create_buy_transaction("PETR4", 1, 2.5, date(2024, 1, 1))]

        point = historical_series(ledger, {"PETR4": make_asset("PETR4", 1, 2.5, 0.5)})[0]

        assert point.invested == 3
        assert point.equity == 1


class TestHistoryOutputs:
    """Test dict and DataFrame views."""

    def test_to_dict_uses_label(self):
        point = HistoryPoint(date=date(2024, 1, 10), label="10/01", invested=1, equity=2, gain=1)

        assert point.to_dict() == {"date": "10/01", "invested": 1, "equity": 2, "gain": 1}

    def test_history_to_frame(self, ledger, current_assets):
        frame = history_to_frame(historical_series(ledger, current_assets))

        assert list(frame.columns) == ["label", "invested", "equity", "gain"]
        assert frame.index[0] == pd.Timestamp(2024, 1, 10)
        assert frame["invested"].iloc[-1] == 3096

    def test_history_to_frame_empty(self):
        frame = history_to_frame([])

        assert frame.empty
        assert list(frame.columns) == ["label", "invested", "equity", "gain"]
