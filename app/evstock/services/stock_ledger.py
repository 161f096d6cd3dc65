from __future__ import annotations

from app.evstock.core.error_catalog import AppError, ErrorCatalog
from app.evstock.db.models import Stock
from app.evstock.repos.stock import StockRepository


def _require_positive(delta, operation: str) -> int:
    if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
        raise AppError(
            ErrorCatalog.BAD_REQUEST,
            details={"message": f"{operation} quantity must be a positive integer, got {delta!r}"},
        )
    return delta


def _conflict(stock: Stock, message: str, **extra) -> AppError:
    return AppError(
        ErrorCatalog.STOCK_LEDGER_CONFLICT,
        details={
            "message": message,
            "stock_id": str(stock.id),
            "quantity_in_stock": stock.quantity_in_stock,
            "quantity_reserved": stock.quantity_reserved,
            **extra,
        },
    )


class StockLedger:
    """Quantity bookkeeping for stock records.

    Each operation re-reads its row under a row lock before mutating it and flushes the
    change; committing is left to the workflow step that owns the transaction.
    """

    def __init__(self, db, stock_repo: StockRepository | None = None):
        self.db = db
        self.stocks = stock_repo or StockRepository(db)

    def _locked_stock(self, stock_id) -> Stock:
        stock = self.stocks.get(stock_id, lock=True)
        if stock is None:
            raise AppError(ErrorCatalog.NOT_FOUND, details={"message": f"Stock {stock_id} not found"})
        return stock

    def reserve(self, stock_id, delta: int) -> Stock:
        delta = _require_positive(delta, "Reserve")
        stock = self._locked_stock(stock_id)
        reserved = stock.quantity_reserved + delta
        if reserved > stock.quantity_in_stock:
            raise _conflict(
                stock,
                f"Cannot reserve {delta} units: only {stock.quantity_available} available",
                requested=delta,
            )
        stock.quantity_reserved = reserved
        self.db.flush()
        return stock

    def unreserve(self, stock_id, delta: int) -> Stock:
        delta = _require_positive(delta, "Unreserve")
        stock = self._locked_stock(stock_id)
        reserved = stock.quantity_reserved - delta
        if reserved < 0:
            raise _conflict(
                stock,
                f"Cannot release {delta} units: only {stock.quantity_reserved} reserved",
                requested=delta,
            )
        stock.quantity_reserved = reserved
        self.db.flush()
        return stock

    def ship(self, stock_id, delta: int) -> Stock:
        delta = _require_positive(delta, "Ship")
        stock = self._locked_stock(stock_id)
        in_stock = stock.quantity_in_stock - delta
        reserved = stock.quantity_reserved - delta
        if in_stock < 0 or reserved < 0 or reserved > in_stock:
            raise _conflict(
                stock,
                f"Cannot ship {delta} units: stock counters would become inconsistent",
                requested=delta,
            )
        stock.quantity_in_stock = in_stock
        stock.quantity_reserved = reserved
        self.db.flush()
        return stock

    def receive(self, warehouse_id, type_component_id, delta: int) -> Stock:
        delta = _require_positive(delta, "Receive")
        stock = self.stocks.find_by_warehouse_and_type(warehouse_id, type_component_id, lock=True)
        if stock is None:
            return self.stocks.create(
                warehouse_id=warehouse_id,
                type_component_id=type_component_id,
                quantity_in_stock=delta,
                quantity_reserved=0,
            )
        stock.quantity_in_stock = stock.quantity_in_stock + delta
        self.db.flush()
        return stock
