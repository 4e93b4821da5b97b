from .receivables import compute_aging_period, compute_supplier_return, pending_sales, total_outstanding
from .profitability import (
    compute_period,
    margin_per_unit,
    monthly_benefits,
    monthly_paid_benefits,
    select_reporting_window,
    supplier_cost_per_unit,
)
from .stock_replay import replay_aggregate_stock, replay_fragrance_stock, stock_divergence

__all__ = [
    "compute_aging_period",
    "compute_supplier_return",
    "pending_sales",
    "total_outstanding",
    "compute_period",
    "margin_per_unit",
    "monthly_benefits",
    "monthly_paid_benefits",
    "select_reporting_window",
    "supplier_cost_per_unit",
    "replay_aggregate_stock",
    "replay_fragrance_stock",
    "stock_divergence",
]
