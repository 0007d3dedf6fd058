from dataclasses import dataclass
from typing import Dict, Iterable

from ..models.order import SIZES
from .ledger_store import OrderRecord


@dataclass(frozen=True)
class OrderSummary:
    per_size: Dict[str, int]
    total_items: int
    total_revenue: int
    order_count: int
    paid_count: int
    paid_revenue: int

    @property
    def outstanding_revenue(self) -> int:
        return self.total_revenue - self.paid_revenue

    def to_dict(self) -> dict:
        return {
            "perSize": dict(self.per_size),
            "totalItems": self.total_items,
            "totalRevenue": self.total_revenue,
            "orderCount": self.order_count,
            "paidCount": self.paid_count,
            "paidRevenue": self.paid_revenue,
            "outstandingRevenue": self.outstanding_revenue,
        }


def aggregate(records: Iterable[OrderRecord], unit_price: int) -> OrderSummary:
    """Per-size and revenue totals for a snapshot. Pure."""
    per_size = {s: 0 for s in SIZES}
    total_items = paid_items = order_count = paid_count = 0
    for r in records:
        for s in SIZES:
            per_size[s] += r.sizes.get(s, 0)
        total_items += r.total_items
        order_count += 1
        if r.paid:
            paid_count += 1
            paid_items += r.total_items
    return OrderSummary(
        per_size=per_size,
        total_items=total_items,
        total_revenue=total_items * unit_price,
        order_count=order_count,
        paid_count=paid_count,
        paid_revenue=paid_items * unit_price,
    )
