from .gateway import BudgetGateway

__all__ = ["BudgetGateway"]
