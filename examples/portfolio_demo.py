#!/usr/bin/env python3
"""
Portfolio Valuation Demo

Walks through the ledger engine end to end:
- Recording buys, sells and dividends
- Weighted-average cost positions (including an oversell)
- Current holdings priced from quotes with fallbacks
- Historical invested-vs-equity series
- Dashboard summary
- SQLite persistence and CSV export/import

Quotes are passed in by hand so the demo runs offline. Pass ``--live`` to
fetch them from brapi.dev / Yahoo Finance instead.
"""

import asyncio
import sys
import tempfile
from datetime import date
from pathlib import Path

from bolsamaster.data import build_default_provider
from bolsamaster.portfolio import (
    InMemoryLedgerStore,
    PortfolioService,
    SQLiteLedgerStore,
    compute_position,
    create_buy_transaction,
    create_dividend_transaction,
    create_sell_transaction,
    export_to_csv,
    history_to_frame,
    import_from_csv,
)


def demo_ledger() -> PortfolioService:
    """Record a small ledger."""
    print("=" * 80)
    print("DEMO 1: Recording Transactions")
    print("=" * 80)

    service = PortfolioService(InMemoryLedgerStore())

    entries = [
        create_buy_transaction("PETR4", 100, 32.50, date(2024, 1, 10)),
        create_buy_transaction("HGLG11", 10, 160.00, date(2024, 1, 15), costs=2.5),
        create_buy_transaction("PETR4", 50, 38.00, date(2024, 2, 1), costs=10),
        create_buy_transaction("AAPL", 5, 950.00, date(2024, 2, 5)),
        create_dividend_transaction("HGLG11", 11.00, date(2024, 2, 14)),
        create_sell_transaction("PETR4", 60, 40.00, date(2024, 3, 1), costs=5),
        create_buy_transaction("BTC", 0.01, 310000.00, date(2024, 3, 20)),
        create_dividend_transaction("PETR4", 120.00, date(2024, 4, 22), withheld_tax=18.00),
    ]

    for entry in entries:
        service.record(entry)
        print(f"  {entry}")

    return service


def demo_positions(service: PortfolioService):
    """Show the weighted-average cost replay."""
    print("\n" + "=" * 80)
    print("DEMO 2: Weighted-Average Cost")
    print("=" * 80)

    ledger = service.snapshot()
    position = compute_position("PETR4", ledger)
    print(f"\n  PETR4: {position.quantity:g} units @ {position.average_cost:.2f} "
          f"(cost basis {position.cost_basis:.2f})")

    oversold = ledger + (create_sell_transaction("PETR4", 500, 41.00, date(2024, 5, 1)),)
    clamped = compute_position("PETR4", oversold)
    print(f"  After selling 500: {clamped.quantity:g} units, "
          f"{clamped.oversold_quantity:g} units dropped as oversold")


async def demo_quotes(service: PortfolioService, live: bool):
    """Price the holdings."""
    print("\n" + "=" * 80)
    print("DEMO 3: Current Holdings")
    print("=" * 80)

    if live:
        service.quote_provider = build_default_provider()
        await service.refresh_quotes()
    else:
        # HGLG11 deliberately missing: it keeps its average cost
        service.recompute({"PETR4": 38.45, "AAPL": 1085.00, "BTC": 352000.00})

    for asset in service.assets:
        print(f"  {asset.ticker:8s} | {asset.asset_type.value:10s} | {asset.quantity:10g} | "
              f"avg {asset.average_cost:10.2f} | now {asset.current_price:10.2f} | "
              f"gain {asset.gain:+10.2f} ({asset.gain_pct:+6.2f}%)")


def demo_history(service: PortfolioService):
    """Show the growth chart series."""
    print("\n" + "=" * 80)
    print("DEMO 4: Invested vs Equity")
    print("=" * 80)

    frame = history_to_frame(service.history())
    print()
    print(frame.to_string())


def demo_summary(service: PortfolioService):
    """Show the dashboard figures."""
    print("\n" + "=" * 80)
    print("DEMO 5: Summary")
    print("=" * 80)

    summary = service.summary(reference_date=date(2024, 4, 30))
    print(f"\n  Equity:           {summary.total_equity:12.2f}")
    print(f"  Cost:             {summary.total_cost:12.2f}")
    print(f"  Unrealized gain:  {summary.total_gain:+12.2f} ({summary.total_gain_pct:+.2f}%)")
    print(f"  Realized gain:    {summary.realized_gain:+12.2f}")
    print(f"  Dividends (life): {summary.dividends_total:12.2f}")
    print(f"  Dividends (Apr):  {summary.monthly_dividend:12.2f}")
    print("\n  Allocation:")
    for slice_ in summary.allocation:
        print(f"    {slice_.asset_type.value:10s} {slice_.percentage:6.2f}%")


def demo_storage(service: PortfolioService):
    """Persist the ledger and move it through CSV."""
    print("\n" + "=" * 80)
    print("DEMO 6: Storage")
    print("=" * 80)

    with tempfile.TemporaryDirectory() as workdir:
        store = SQLiteLedgerStore(Path(workdir) / "demo_ledger.db")
        store.append_many(service.snapshot())
        print(f"\n  Saved {len(store.list_transactions())} transactions to SQLite")

        csv_path = export_to_csv(store.list_transactions(), Path(workdir) / "ledger.csv")
        restored = import_from_csv(csv_path)
        print(f"  Round-tripped {len(restored)} transactions through {Path(csv_path).name}")


def main():
    """Run all demos."""
    live = "--live" in sys.argv[1:]

    print("\n" + "=" * 80)
    print("BolsaMaster Portfolio Demo")
    print("=" * 80)

    service = demo_ledger()
    demo_positions(service)
    asyncio.run(demo_quotes(service, live))
    demo_history(service)
    demo_summary(service)
    demo_storage(service)

    print("\n" + "=" * 80)
    print("Demo Complete!")
    print("=" * 80)


if __name__ == "__main__":
    main()
