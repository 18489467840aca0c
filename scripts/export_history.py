"""
Export script: flatten closed-position history of a JSON account store into parquet/csv.
"""
import argparse
from pathlib import Path
from typing import List

import polars as pl
from loguru import logger

from src.account.store import JsonFileAccountStore
from src.domain.markets import Market


HISTORY_SCHEMA = {
    "username": pl.Utf8,
    "market": pl.Utf8,
    "id": pl.Int64,
    "asset": pl.Utf8,
    "side": pl.Utf8,
    "order_kind": pl.Utf8,
    "amount": pl.Float64,
    "leverage": pl.Float64,
    "entry_price": pl.Float64,
    "exit_price": pl.Float64,
    "realized_pnl": pl.Float64,
    "close_reason": pl.Utf8,
    "closed_at": pl.Int64,
}


def collect_history(store: JsonFileAccountStore) -> pl.DataFrame:
    """One row per closed position across all accounts and markets."""
    rows: List[dict] = []
    for username, account in store.load().items():
        for market in Market:
            for c in account.closed_positions(market):
                rows.append({
                    "username": username,
                    "market": market.value,
                    "id": c.id,
                    "asset": c.position.asset_type,
                    "side": c.position.side.value,
                    "order_kind": c.position.order_kind.value,
                    "amount": c.position.amount,
                    "leverage": getattr(c.position, "leverage", None),
                    "entry_price": c.position.entry_price,
                    "exit_price": c.exit_price,
                    "realized_pnl": c.realized_pnl,
                    "close_reason": c.close_reason.name,
                    "closed_at": c.closed_at,
                })

    df = pl.DataFrame(rows, schema=HISTORY_SCHEMA)
    df = df.with_columns(
        pl.from_epoch(pl.col("closed_at"), time_unit="ms").alias("closed_time")
    )
    return df.sort(["username", "closed_at"])


def summarize(df: pl.DataFrame) -> pl.DataFrame:
    """Realized PnL and trade count per user and market."""
    return (
        df.group_by(["username", "market"])
        .agg([
            pl.len().alias("closed_count"),
            pl.col("realized_pnl").sum().alias("realized_pnl"),
        ])
        .sort(["username", "market"])
    )


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--store", default="users.json", help="JSON account store")
    parser.add_argument("--out", default="closed_positions.parquet", help="Output .parquet or .csv")
    args = parser.parse_args()

    store = JsonFileAccountStore(args.store)
    df = collect_history(store)

    output_path = Path(args.out)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.suffix == ".csv":
        df.write_csv(output_path)
    else:
        df.write_parquet(output_path)
    logger.info(f"Exported {len(df)} closed positions -> {output_path}")

    for row in summarize(df).iter_rows(named=True):
        logger.info(f"{row['username']} {row['market']}: {row['closed_count']} closed, pnl={row['realized_pnl']:.2f}")


if __name__ == "__main__":
    main()
