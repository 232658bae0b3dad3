"""Trade ledger and portfolio history backed by SQLite, with optional Parquet export."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import pyarrow as pa
import pyarrow.parquet as pq
import structlog

from ..core.interfaces import Persistence
from ..core.types import Token

logger = structlog.get_logger(__name__)


class SQLiteStorage(Persistence):
    """Ledger of sniper trades, settled tokens and registry snapshots."""

    def __init__(
        self,
        db_path: str = "sniper.sqlite",
        parquet_dir: str | None = None,
        enable_parquet: bool = False,
    ) -> None:
        """Configure the ledger location.

        Args:
            db_path: SQLite file holding the ledger
            parquet_dir: Where daily trade exports go
            enable_parquet: Mirror each trade into a Parquet file
        """
        self.db_path = db_path
        self.parquet_dir = Path(parquet_dir) if parquet_dir else None
        self.enable_parquet = enable_parquet and self.parquet_dir is not None

        if self.enable_parquet:
            self.parquet_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Parquet trade export on", parquet_dir=str(self.parquet_dir))

        logger.info("Ledger configured", db_path=db_path)

    async def initialize(self) -> None:
        """Create the ledger schema if missing."""
        # Wei amounts exceed SQLite INTEGER range and are stored as TEXT
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    token_address TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    amount_eth TEXT NOT NULL,
                    amount_token TEXT NOT NULL,
                    gas_cost TEXT NOT NULL DEFAULT '0',
                    ts REAL NOT NULL
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_trades_token_address
                ON trades(token_address)
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS portfolio (
                    token_address TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    final_state TEXT NOT NULL,
                    removal_reason TEXT,
                    eth_spent TEXT NOT NULL,
                    tx_gas_cost TEXT NOT NULL,
                    eth_received TEXT NOT NULL,
                    profit TEXT NOT NULL,
                    roi REAL NOT NULL,
                    time_of_purchase INTEGER NOT NULL,
                    settled_ts REAL NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            await db.commit()

        logger.info("Ledger schema ready")

    async def record_trade(
        self,
        token_address: str,
        symbol: str,
        side: str,
        amount_eth: int,
        amount_token: int,
        gas_cost: int = 0,
        ts: float | None = None,
    ) -> int:
        """Append one buy or sell fill to the ledger.

        Args:
            token_address: Traded token
            symbol: Its symbol, for reports
            side: "buy" or "sell"
            amount_eth: Wei spent on a buy, received on a sell
            amount_token: Token base units moved
            gas_cost: Wei burned on gas by the transaction
            ts: Unix time of the fill, now when omitted

        Returns:
            Row id of the fill
        """
        if ts is None:
            ts = datetime.now().timestamp()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO trades
                    (token_address, symbol, side, amount_eth, amount_token, gas_cost, ts)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    token_address,
                    symbol,
                    side,
                    str(amount_eth),
                    str(amount_token),
                    str(gas_cost),
                    ts,
                ),
            )

            trade_id = cursor.lastrowid
            await db.commit()

        logger.debug(
            "Fill recorded",
            trade_id=trade_id,
            token_address=token_address,
            side=side,
            amount_eth=amount_eth,
            amount_token=amount_token,
        )

        if self.enable_parquet:
            self._write_trade_to_parquet(
                {
                    "id": trade_id,
                    "token_address": token_address,
                    "symbol": symbol,
                    "side": side,
                    "amount_eth": str(amount_eth),
                    "amount_token": str(amount_token),
                    "gas_cost": str(gas_cost),
                    "ts": ts,
                }
            )

        return trade_id

    async def record_sale(self, token: Token, ts: float | None = None) -> None:
        """Store a settled token with its profit and ROI.

        Args:
            token: Final token record
            ts: Settlement timestamp (defaults to current time)
        """
        if ts is None:
            ts = datetime.now().timestamp()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO portfolio (
                    token_address, name, symbol, final_state, removal_reason,
                    eth_spent, tx_gas_cost, eth_received, profit, roi,
                    time_of_purchase, settled_ts
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(token_address) DO UPDATE SET
                    final_state = excluded.final_state,
                    removal_reason = excluded.removal_reason,
                    tx_gas_cost = excluded.tx_gas_cost,
                    eth_received = excluded.eth_received,
                    profit = excluded.profit,
                    roi = excluded.roi,
                    settled_ts = excluded.settled_ts
            """,
                (
                    token.address,
                    token.name,
                    token.symbol,
                    token.state.value,
                    token.removal_reason,
                    str(token.eth_spent),
                    str(token.tx_gas_cost),
                    str(token.eth_received_at_sale),
                    str(token.profit()),
                    token.roi(),
                    token.time_of_purchase,
                    ts,
                ),
            )

            await db.commit()

        logger.info(
            "Sale recorded",
            profit=token.profit(),
            roi=round(token.roi(), 4),
            **token.log_fields(),
        )

    async def load_portfolio(self) -> list[dict[str, Any]]:
        """Load settled tokens, most recent first.

        Returns:
            List of portfolio rows with wei amounts as ints
        """
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row

            async with db.execute("""
                SELECT * FROM portfolio ORDER BY settled_ts DESC
            """) as cursor:
                rows = await cursor.fetchall()

        portfolio = []
        for row in rows:
            entry = dict(row)
            for key in ("eth_spent", "tx_gas_cost", "eth_received", "profit"):
                entry[key] = int(entry[key])
            portfolio.append(entry)

        logger.debug("Loaded portfolio", count=len(portfolio))
        return portfolio

    async def load_trades(self, token_address: str | None = None) -> list[dict[str, Any]]:
        """Load recorded trades, optionally for one token."""
        query = "SELECT * FROM trades"
        params: tuple = ()
        if token_address:
            query += " WHERE token_address = ?"
            params = (token_address,)
        query += " ORDER BY id"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()

        trades = []
        for row in rows:
            entry = dict(row)
            for key in ("amount_eth", "amount_token", "gas_cost"):
                entry[key] = int(entry[key])
            trades.append(entry)
        return trades

    async def load_state(self, key: str) -> str | None:
        """Return the raw snapshot stored under ``key``, or None."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT value FROM state WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()

        if row:
            return row[0]

        logger.debug("No snapshot stored", key=key)
        return None

    async def save_state(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous snapshot."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO state (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value
            """,
                (key, value),
            )

            await db.commit()

        logger.debug("Snapshot stored", key=key, size=len(value))

    async def save_state_json(self, key: str, data: Any) -> None:
        """JSON-encode ``data`` and store it under ``key``."""
        await self.save_state(key, json.dumps(data))

    async def load_state_json(self, key: str) -> Any | None:
        """Decode the JSON snapshot under ``key``; corrupt data reads as None."""
        value = await self.load_state(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error("Snapshot is not valid JSON", key=key, error=str(e))
            return None

    def _write_trade_to_parquet(self, trade: dict[str, Any]) -> None:
        """Append a trade to the day's Parquet file."""
        date_str = datetime.fromtimestamp(trade["ts"]).date().isoformat()
        table = pa.table({key: [value] for key, value in {**trade, "date": date_str}.items()})
        parquet_file = self.parquet_dir / f"trades_{date_str}.parquet"

        try:
            if parquet_file.exists():
                table = pa.concat_tables([pq.read_table(str(parquet_file)), table])
            pq.write_table(table, str(parquet_file))
        except (OSError, pa.ArrowException) as e:
            logger.error(
                "Failed to write trade to Parquet", trade_id=trade["id"], error=str(e)
            )
            return

        logger.debug("Trade written to Parquet", trade_id=trade["id"], file=str(parquet_file))

    async def close(self) -> None:
        """Connections are opened per call, so there is nothing to release."""
        logger.info("Ledger closed")

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
