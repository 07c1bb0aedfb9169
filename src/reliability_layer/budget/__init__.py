"""Per-tenant budget accounting and enforcement."""

from reliability_layer.budget.tracker import CHECK_ORDER, BudgetTracker

__all__ = ["BudgetTracker", "CHECK_ORDER"]
