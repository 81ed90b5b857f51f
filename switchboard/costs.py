"""
Cost Tracking — know what you're spending.

Every completed exchange writes a usage_tracking row with the provider's
token counts and a cost estimate from the `pricing` block of config.yaml
(USD per million tokens). Models without a price are recorded at $0.
"""

from __future__ import annotations

import logging
from switchboard.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class CostTracker:
    """Estimate exchange costs and aggregate them from usage_tracking."""

    def __init__(self, sqlite: SQLiteStore, pricing: dict | None = None):
        self.sqlite = sqlite
        self.pricing = pricing or {}

    def estimate(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """USD estimate for one exchange."""
        price = self.pricing.get(model)
        if not price:
            return 0.0
        try:
            cost = (
                input_tokens * float(price.get("input", 0))
                + output_tokens * float(price.get("output", 0))
            ) / 1_000_000
        except (TypeError, ValueError):
            logger.warning("Bad pricing entry for model %s: %r", model, price)
            return 0.0
        return round(cost, 6)

    def get_stats(self, days: int = 30) -> dict:
        """
        Get cost stats for a given period.

        Returns:
            {
                "total": 1.23,
                "average_daily": 0.041,
                "tokens": {"input": 1200, "output": 3400},
                "by_model": {"claude-sonnet-4-5-20250929": {"cost": 0.89, "exchanges": 12}, ...},
                "by_day": {"2026-02-20": 0.05, ...},
                "by_conversation": [{"conversation_id": "...", "cost": 0.10, "exchanges": 5}, ...]
            }
        """
        since = f"-{days} days"
        with self.sqlite._connect() as conn:
            totals = conn.execute(
                "SELECT COALESCE(SUM(cost_estimate), 0) AS cost, "
                "COALESCE(SUM(input_tokens), 0) AS input_total, "
                "COALESCE(SUM(output_tokens), 0) AS output_total "
                "FROM usage_tracking WHERE datetime(created_at) > datetime('now', ?)",
                (since,),
            ).fetchone()

            model_rows = conn.execute(
                "SELECT model, COUNT(*) as n, COALESCE(SUM(cost_estimate), 0) as cost "
                "FROM usage_tracking "
                "WHERE datetime(created_at) > datetime('now', ?) "
                "GROUP BY model ORDER BY cost DESC",
                (since,),
            ).fetchall()
            by_model = {
                row["model"]: {"cost": round(row["cost"], 6), "exchanges": row["n"]}
                for row in model_rows
            }

            day_rows = conn.execute(
                "SELECT DATE(created_at) as day, COALESCE(SUM(cost_estimate), 0) as cost "
                "FROM usage_tracking "
                "WHERE datetime(created_at) > datetime('now', ?) "
                "GROUP BY DATE(created_at) ORDER BY day DESC",
                (since,),
            ).fetchall()
            by_day = {row["day"]: round(row["cost"], 6) for row in day_rows}

            conv_rows = conn.execute(
                "SELECT conversation_id, COUNT(*) as n, "
                "COALESCE(SUM(cost_estimate), 0) as cost "
                "FROM usage_tracking "
                "WHERE datetime(created_at) > datetime('now', ?) "
                "GROUP BY conversation_id ORDER BY cost DESC LIMIT 20",
                (since,),
            ).fetchall()
            by_conversation = [
                {
                    "conversation_id": row["conversation_id"],
                    "cost": round(row["cost"], 6),
                    "exchanges": row["n"],
                }
                for row in conv_rows
            ]

        total = totals["cost"]
        return {
            "total": round(total, 6),
            "average_daily": round(total / max(days, 1), 6),
            "days_queried": days,
            "tokens": {"input": totals["input_total"], "output": totals["output_total"]},
            "by_model": by_model,
            "by_day": by_day,
            "by_conversation": by_conversation,
        }

    def get_total(self) -> float:
        """Get all-time total cost."""
        with self.sqlite._connect() as conn:
            total = conn.execute(
                "SELECT COALESCE(SUM(cost_estimate), 0) FROM usage_tracking"
            ).fetchone()[0]
        return round(total, 6)
