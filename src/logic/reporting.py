import csv
import os
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.config import Config
from src.store.selectors import SaleRow

CSV_HEADERS = [
    "id",
    "date",
    "customer",
    "airline",
    "value",
    "cost",
    "profit",
    "created_at",
]


def summarize_sales(rows: List[SaleRow]) -> Dict[str, Any]:
    """
    Aggregates the currently loaded sales.
    Metrics: count, total value, total cost, profit, and the same per airline.
    """
    per_airline = defaultdict(lambda: {"count": 0, "value": 0.0, "cost": 0.0})
    for row in rows:
        bucket = per_airline[row.airline_name]
        bucket["count"] += 1
        bucket["value"] += row.value
        bucket["cost"] += row.cost

    for bucket in per_airline.values():
        bucket["profit"] = bucket["value"] - bucket["cost"]

    total_value = sum(row.value for row in rows)
    total_cost = sum(row.cost for row in rows)
    return {
        "count": len(rows),
        "value": total_value,
        "cost": total_cost,
        "profit": total_value - total_cost,
        # Biggest airlines first
        "airlines": dict(
            sorted(per_airline.items(), key=lambda item: item[1]["value"], reverse=True)
        ),
    }


def format_sales_summary(summary: Dict[str, Any]) -> str:
    lines = []
    lines.append("\n" + "=" * 50)
    lines.append("              SALES SUMMARY")
    lines.append("=" * 50)

    if not summary["count"]:
        lines.append("No sales loaded.")
    else:
        lines.append(f"{'Sales:':<25} {summary['count']}")
        lines.append(f"{'Total value:':<25} R$ {summary['value']:,.2f}")
        lines.append(f"{'Total cost:':<25} R$ {summary['cost']:,.2f}")
        lines.append(f"{'Profit:':<25} R$ {summary['profit']:,.2f}")
        lines.append("-" * 50)
        for airline, bucket in summary["airlines"].items():
            lines.append(
                f"{airline[:24]:<25} | {bucket['count']:>4} | R$ {bucket['value']:>10,.2f} | Profit: R$ {bucket['profit']:,.2f}"
            )

    lines.append("=" * 50 + "\n")
    return "\n".join(lines)


def export_sales_csv(rows: List[SaleRow], output_file: Optional[str] = None) -> str:
    """Writes the sales (with resolved names) to CSV and returns the path."""
    if output_file is None:
        today_str = datetime.now().strftime("%Y-%m-%d")
        output_file = os.path.join(Config.EXPORT_DIR, f"sales_{today_str}.csv")

    directory = os.path.dirname(output_file)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(output_file, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_HEADERS)
        writer.writeheader()
        for row in rows:
            writer.writerow(
                {
                    "id": row.id,
                    "date": row.date.isoformat(),
                    "customer": row.customer_name,
                    "airline": row.airline_name,
                    "value": f"{row.value:.2f}",
                    "cost": f"{row.cost:.2f}",
                    "profit": f"{row.profit:.2f}",
                    "created_at": row.created_at.strftime("%Y-%m-%d %H:%M"),
                }
            )

    return output_file
