"""SQLite-backed store for agents, portfolios, trades, reflections and reports."""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from trading_arena.config import AgentConfig
from trading_arena.errors import NotFoundError
from trading_arena.models import (
    Agent,
    DailyReport,
    PortfolioSnapshot,
    Position,
    Reflection,
    Trade,
    TradeSide,
    TradeStatus,
)


def _ts(dt: datetime) -> str:
    return dt.isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class DataStore:
    """Persists ledger state. All mutations of one portfolio go through transaction()."""

    def __init__(self, db_path: str | Path = "trading_arena.db"):
        self.db_path = Path(db_path) if db_path != ":memory:" else db_path
        self.conn = sqlite3.connect(
            str(self.db_path), check_same_thread=False, isolation_level=None
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._depth = 0
        self._init_tables()

    def _init_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS agents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                display_name TEXT NOT NULL,
                provider TEXT NOT NULL,
                model TEXT NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS portfolios (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                agent_id INTEGER NOT NULL UNIQUE,
                cash REAL NOT NULL CHECK (cash >= 0),
                total_value REAL NOT NULL,
                initial_value REAL NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (agent_id) REFERENCES agents(id)
            );

            CREATE TABLE IF NOT EXISTS positions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                portfolio_id INTEGER NOT NULL,
                symbol TEXT NOT NULL,
                quantity REAL NOT NULL CHECK (quantity > 0),
                avg_price REAL NOT NULL,
                current_price REAL NOT NULL,
                UNIQUE (portfolio_id, symbol),
                FOREIGN KEY (portfolio_id) REFERENCES portfolios(id)
            );

            CREATE TABLE IF NOT EXISTS trades (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                agent_id INTEGER NOT NULL,
                symbol TEXT NOT NULL,
                side TEXT NOT NULL,
                quantity REAL NOT NULL,
                price REAL NOT NULL,
                amount REAL NOT NULL,
                rationale TEXT,
                status TEXT NOT NULL,
                executed_at TEXT NOT NULL,
                closed_at TEXT,
                pnl REAL,
                FOREIGN KEY (agent_id) REFERENCES agents(id)
            );

            CREATE TABLE IF NOT EXISTS portfolio_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                portfolio_id INTEGER NOT NULL,
                total_value REAL NOT NULL,
                cash REAL NOT NULL,
                position_value REAL NOT NULL,
                return_pct REAL NOT NULL,
                timestamp TEXT NOT NULL,
                FOREIGN KEY (portfolio_id) REFERENCES portfolios(id)
            );

            CREATE TABLE IF NOT EXISTS reflections (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                trade_id INTEGER NOT NULL UNIQUE,
                agent_id INTEGER NOT NULL,
                content TEXT NOT NULL,
                pnl REAL NOT NULL,
                score INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (trade_id) REFERENCES trades(id)
            );

            CREATE TABLE IF NOT EXISTS daily_reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                day INTEGER NOT NULL UNIQUE,
                date TEXT NOT NULL,
                title TEXT NOT NULL,
                summary TEXT,
                payload_json TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS stock_pools (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                symbols_json TEXT NOT NULL,
                created_by TEXT NOT NULL,
                reason TEXT,
                active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS scheduler_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_trades_agent_symbol
                ON trades (agent_id, symbol, executed_at);
            CREATE INDEX IF NOT EXISTS idx_snapshots_portfolio
                ON portfolio_snapshots (portfolio_id, timestamp);
        """)

    @contextmanager
    def transaction(self):
        """Atomic unit of work. Nested calls join the outermost transaction."""
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            self.conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            else:
                self.conn.execute("COMMIT")
            finally:
                self._depth = 0

    def reset(self):
        """Delete all rows from every table."""
        with self.transaction():
            for table in (
                "reflections",
                "trades",
                "portfolio_snapshots",
                "positions",
                "portfolios",
                "agents",
                "daily_reports",
                "stock_pools",
                "scheduler_state",
            ):
                self.conn.execute(f"DELETE FROM {table}")

    # Scheduler state

    def get_state(self, key: str) -> str | None:
        """Get a scheduler state value."""
        row = self.conn.execute(
            "SELECT value FROM scheduler_state WHERE key = ?", (key,)
        ).fetchone()
        return row[0] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a scheduler state value."""
        with self.transaction():
            self.conn.execute(
                "INSERT OR REPLACE INTO scheduler_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    # Agents

    @staticmethod
    def _agent(row) -> Agent:
        return Agent(
            id=row["id"],
            name=row["name"],
            display_name=row["display_name"],
            provider=row["provider"],
            model=row["model"],
            enabled=bool(row["enabled"]),
            created_at=_parse_ts(row["created_at"]),
        )

    def upsert_agent(self, agent: AgentConfig) -> Agent:
        """Register an agent, or refresh provider/model of an existing one."""
        with self.transaction():
            self.conn.execute(
                """INSERT INTO agents (name, display_name, provider, model, enabled, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(name) DO UPDATE SET
                       display_name = excluded.display_name,
                       provider = excluded.provider,
                       model = excluded.model""",
                (
                    agent.name,
                    agent.display_name or agent.name,
                    agent.provider,
                    agent.model,
                    1 if agent.enabled else 0,
                    _ts(datetime.now()),
                ),
            )
            row = self.conn.execute(
                "SELECT * FROM agents WHERE name = ?", (agent.name,)
            ).fetchone()
        return self._agent(row)

    def get_agent(self, agent_id: int) -> Agent:
        row = self.conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        return self._agent(row)

    def list_agents(self, enabled_only: bool = False) -> list[Agent]:
        sql = "SELECT * FROM agents"
        if enabled_only:
            sql += " WHERE enabled = 1"
        return [self._agent(r) for r in self.conn.execute(sql + " ORDER BY id").fetchall()]

    def set_agent_enabled(self, agent_id: int, enabled: bool) -> None:
        with self.transaction():
            cur = self.conn.execute(
                "UPDATE agents SET enabled = ? WHERE id = ?", (1 if enabled else 0, agent_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Agent {agent_id} not found")

    # Portfolios and positions

    def get_portfolio(self, agent_id: int) -> sqlite3.Row | None:
        return self.conn.execute(
            "SELECT * FROM portfolios WHERE agent_id = ?", (agent_id,)
        ).fetchone()

    def insert_portfolio(self, agent_id: int, initial_capital: float) -> int:
        cursor = self.conn.execute(
            """INSERT INTO portfolios (agent_id, cash, total_value, initial_value, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (agent_id, initial_capital, initial_capital, initial_capital, _ts(datetime.now())),
        )
        return cursor.lastrowid

    def update_portfolio(self, portfolio_id: int, cash: float, total_value: float) -> None:
        self.conn.execute(
            "UPDATE portfolios SET cash = ?, total_value = ? WHERE id = ?",
            (cash, total_value, portfolio_id),
        )

    @staticmethod
    def _position(row) -> Position:
        return Position(
            symbol=row["symbol"],
            quantity=row["quantity"],
            avg_price=row["avg_price"],
            current_price=row["current_price"],
        )

    def list_positions(self, portfolio_id: int) -> list[Position]:
        rows = self.conn.execute(
            "SELECT * FROM positions WHERE portfolio_id = ? ORDER BY symbol", (portfolio_id,)
        ).fetchall()
        return [self._position(r) for r in rows]

    def get_position(self, portfolio_id: int, symbol: str) -> Position | None:
        row = self.conn.execute(
            "SELECT * FROM positions WHERE portfolio_id = ? AND symbol = ?",
            (portfolio_id, symbol),
        ).fetchone()
        return self._position(row) if row else None

    def save_position(self, portfolio_id: int, position: Position) -> None:
        self.conn.execute(
            """INSERT INTO positions (portfolio_id, symbol, quantity, avg_price, current_price)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(portfolio_id, symbol) DO UPDATE SET
                   quantity = excluded.quantity,
                   avg_price = excluded.avg_price,
                   current_price = excluded.current_price""",
            (
                portfolio_id,
                position.symbol,
                position.quantity,
                position.avg_price,
                position.current_price,
            ),
        )

    def delete_position(self, portfolio_id: int, symbol: str) -> None:
        self.conn.execute(
            "DELETE FROM positions WHERE portfolio_id = ? AND symbol = ?", (portfolio_id, symbol)
        )

    # Snapshots

    @staticmethod
    def _snapshot(row) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            id=row["id"],
            portfolio_id=row["portfolio_id"],
            total_value=row["total_value"],
            cash=row["cash"],
            position_value=row["position_value"],
            return_pct=row["return_pct"],
            timestamp=_parse_ts(row["timestamp"]),
        )

    def insert_snapshot(self, snapshot: PortfolioSnapshot) -> int:
        cursor = self.conn.execute(
            """INSERT INTO portfolio_snapshots
               (portfolio_id, total_value, cash, position_value, return_pct, timestamp)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                snapshot.portfolio_id,
                snapshot.total_value,
                snapshot.cash,
                snapshot.position_value,
                snapshot.return_pct,
                _ts(snapshot.timestamp),
            ),
        )
        return cursor.lastrowid

    def latest_snapshot_at_or_before(
        self, portfolio_id: int, when: datetime
    ) -> PortfolioSnapshot | None:
        """Most recent snapshot taken no later than `when`."""
        row = self.conn.execute(
            "SELECT * FROM portfolio_snapshots WHERE portfolio_id = ? AND timestamp <= ? "
            "ORDER BY timestamp DESC, id DESC LIMIT 1",
            (portfolio_id, _ts(when)),
        ).fetchone()
        return self._snapshot(row) if row else None

    def list_snapshots(
        self, portfolio_id: int, since: datetime | None = None
    ) -> list[PortfolioSnapshot]:
        sql = "SELECT * FROM portfolio_snapshots WHERE portfolio_id = ?"
        params: list = [portfolio_id]
        if since is not None:
            sql += " AND timestamp >= ?"
            params.append(_ts(since))
        rows = self.conn.execute(sql + " ORDER BY timestamp, id", params).fetchall()
        return [self._snapshot(r) for r in rows]

    # Trades

    @staticmethod
    def _trade(row) -> Trade:
        return Trade(
            id=row["id"],
            agent_id=row["agent_id"],
            symbol=row["symbol"],
            side=TradeSide(row["side"]),
            quantity=row["quantity"],
            price=row["price"],
            amount=row["amount"],
            rationale=row["rationale"] or "",
            status=TradeStatus(row["status"]),
            executed_at=_parse_ts(row["executed_at"]),
            closed_at=_parse_ts(row["closed_at"]),
            pnl=row["pnl"],
        )

    def insert_trade(self, trade: Trade) -> Trade:
        cursor = self.conn.execute(
            """INSERT INTO trades
               (agent_id, symbol, side, quantity, price, amount, rationale,
                status, executed_at, closed_at, pnl)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                trade.agent_id,
                trade.symbol,
                trade.side.value,
                trade.quantity,
                trade.price,
                trade.amount,
                trade.rationale,
                trade.status.value,
                _ts(trade.executed_at),
                _ts(trade.closed_at) if trade.closed_at else None,
                trade.pnl,
            ),
        )
        return trade.model_copy(update={"id": cursor.lastrowid})

    def get_trade(self, trade_id: int) -> Trade:
        row = self.conn.execute("SELECT * FROM trades WHERE id = ?", (trade_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Trade {trade_id} not found")
        return self._trade(row)

    def list_trades(
        self,
        agent_id: int | None = None,
        symbol: str | None = None,
        status: TradeStatus | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[Trade]:
        """Trades ordered oldest first, filtered by any combination of fields."""
        clauses, params = [], []
        if agent_id is not None:
            clauses.append("agent_id = ?")
            params.append(agent_id)
        if symbol is not None:
            clauses.append("symbol = ?")
            params.append(symbol)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if since is not None:
            clauses.append("executed_at >= ?")
            params.append(_ts(since))
        if until is not None:
            clauses.append("executed_at <= ?")
            params.append(_ts(until))
        sql = "SELECT * FROM trades"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY executed_at, id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [self._trade(r) for r in self.conn.execute(sql, params).fetchall()]

    def last_buy_before(self, agent_id: int, symbol: str, before: datetime) -> Trade | None:
        """The most recent BUY of `symbol` executed strictly before `before`."""
        row = self.conn.execute(
            "SELECT * FROM trades WHERE agent_id = ? AND symbol = ? AND side = 'BUY' "
            "AND executed_at < ? ORDER BY executed_at DESC, id DESC LIMIT 1",
            (agent_id, symbol, _ts(before)),
        ).fetchone()
        return self._trade(row) if row else None

    def unreflected_closed_trades(
        self, closed_before: datetime, agent_id: int | None = None
    ) -> list[Trade]:
        """CLOSED trades with closed_at <= closed_before and no reflection yet."""
        sql = (
            "SELECT t.* FROM trades t LEFT JOIN reflections r ON r.trade_id = t.id "
            "WHERE t.status = 'CLOSED' AND t.closed_at IS NOT NULL AND t.closed_at <= ? "
            "AND r.id IS NULL"
        )
        params: list = [_ts(closed_before)]
        if agent_id is not None:
            sql += " AND t.agent_id = ?"
            params.append(agent_id)
        rows = self.conn.execute(sql + " ORDER BY t.closed_at, t.id", params).fetchall()
        return [self._trade(r) for r in rows]

    # Reflections

    @staticmethod
    def _reflection(row) -> Reflection:
        return Reflection(
            id=row["id"],
            trade_id=row["trade_id"],
            agent_id=row["agent_id"],
            content=row["content"],
            pnl=row["pnl"],
            score=row["score"],
            created_at=_parse_ts(row["created_at"]),
        )

    def insert_reflection(self, reflection: Reflection) -> Reflection:
        with self.transaction():
            cursor = self.conn.execute(
                """INSERT INTO reflections (trade_id, agent_id, content, pnl, score, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    reflection.trade_id,
                    reflection.agent_id,
                    reflection.content,
                    reflection.pnl,
                    reflection.score,
                    _ts(reflection.created_at),
                ),
            )
        return reflection.model_copy(update={"id": cursor.lastrowid})

    def top_reflections(self, agent_id: int, limit: int = 10) -> list[Reflection]:
        """Most important lessons first, newest first among equal scores."""
        rows = self.conn.execute(
            "SELECT * FROM reflections WHERE agent_id = ? "
            "ORDER BY score DESC, created_at DESC, id DESC LIMIT ?",
            (agent_id, limit),
        ).fetchall()
        return [self._reflection(r) for r in rows]

    def list_reflections(self, agent_id: int | None = None) -> list[Reflection]:
        if agent_id is None:
            rows = self.conn.execute("SELECT * FROM reflections ORDER BY id").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM reflections WHERE agent_id = ? ORDER BY id", (agent_id,)
            ).fetchall()
        return [self._reflection(r) for r in rows]

    # Daily reports

    def latest_report_day(self) -> int:
        row = self.conn.execute("SELECT MAX(day) FROM daily_reports").fetchone()
        return row[0] or 0

    def insert_report(self, report: DailyReport) -> DailyReport:
        """Store a report. Fails if a report for that day already exists."""
        with self.transaction():
            if report.day <= self.latest_report_day():
                raise ValueError(f"Report day {report.day} is not after the latest report")
            cursor = self.conn.execute(
                """INSERT INTO daily_reports (day, date, title, summary, payload_json)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    report.day,
                    _ts(report.date),
                    report.title,
                    report.summary,
                    report.model_dump_json(exclude={"id"}),
                ),
            )
        return report.model_copy(update={"id": cursor.lastrowid})

    @staticmethod
    def _report(row) -> DailyReport:
        report = DailyReport.model_validate_json(row["payload_json"])
        return report.model_copy(update={"id": row["id"]})

    def get_report(self, report_id: int) -> DailyReport:
        row = self.conn.execute(
            "SELECT * FROM daily_reports WHERE id = ?", (report_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Report {report_id} not found")
        return self._report(row)

    def get_report_by_day(self, day: int) -> DailyReport:
        row = self.conn.execute("SELECT * FROM daily_reports WHERE day = ?", (day,)).fetchone()
        if row is None:
            raise NotFoundError(f"Report for day {day} not found")
        return self._report(row)

    def list_reports(self, limit: int = 20) -> list[DailyReport]:
        rows = self.conn.execute(
            "SELECT * FROM daily_reports ORDER BY day DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._report(r) for r in rows]

    # Stock pools

    def save_stock_pool(
        self, symbols: list[str], name: str, created_by: str, reason: str | None = None
    ) -> int:
        """Deactivate the current pool and store a new active one."""
        with self.transaction():
            self.conn.execute("UPDATE stock_pools SET active = 0 WHERE active = 1")
            cursor = self.conn.execute(
                """INSERT INTO stock_pools (name, symbols_json, created_by, reason, active, created_at)
                   VALUES (?, ?, ?, ?, 1, ?)""",
                (name, json.dumps(symbols), created_by, reason, _ts(datetime.now())),
            )
        return cursor.lastrowid

    def get_active_stock_pool(self) -> list[str] | None:
        row = self.conn.execute(
            "SELECT symbols_json FROM stock_pools WHERE active = 1 "
            "ORDER BY created_at DESC, id DESC LIMIT 1"
        ).fetchone()
        return json.loads(row[0]) if row else None

    def close(self):
        self.conn.close()
