# bizadmin/database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from bizadmin.database.repositories import (
        CustomersRepo, Customer, CustomersDomainError,
        ProductsRepo, Product, ProductsDomainError,
        StockMovementsRepo,
    )
"""

# ---------------- Customers ----------------
from .customers_repo import (
    CustomersRepo,
    Customer,
    DomainError as CustomersDomainError,
)

# ---------------- Products -----------------
from .products_repo import (
    ProductsRepo,
    Product,
    DomainError as ProductsDomainError,
)

# -------------- Stock ledger ---------------
from .stock_movements_repo import StockMovementsRepo

__all__ = [
    "CustomersRepo",
    "Customer",
    "CustomersDomainError",
    "ProductsRepo",
    "Product",
    "ProductsDomainError",
    "StockMovementsRepo",
]
