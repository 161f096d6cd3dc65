"""Greedy stock allocation over priority-ordered candidate stock records.

The planner is pure: it never touches the database and never mutates the candidate
records. Quantities already planned for earlier demands of the same request are passed
in through ``planned`` (stock id -> quantity) and subtracted from availability.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from app.evstock.core.error_catalog import AppError, ErrorCatalog


class StockCandidate(Protocol):
    id: Any
    type_component_id: Any
    quantity_in_stock: int
    quantity_reserved: int


@dataclass(frozen=True)
class Demand:
    type_component_id: Any
    quantity: int
    key: Any = None


@dataclass(frozen=True)
class Allocation:
    stock_id: Any
    quantity: int


@dataclass(frozen=True)
class AllocationPlan:
    demand: Demand
    allocations: tuple[Allocation, ...]
    shortfall: int

    @property
    def satisfied(self) -> bool:
        return self.shortfall == 0

    @property
    def allocated(self) -> int:
        return sum(allocation.quantity for allocation in self.allocations)


@dataclass(frozen=True)
class RequestPlan:
    plans: tuple[AllocationPlan, ...]
    planned: dict = field(default_factory=dict)

    @property
    def satisfied(self) -> bool:
        return all(plan.satisfied for plan in self.plans)

    @property
    def shortfalls(self) -> list[AllocationPlan]:
        return [plan for plan in self.plans if not plan.satisfied]


def _validate_demand(demand: Demand) -> None:
    quantity = demand.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise AppError(
            ErrorCatalog.BAD_REQUEST,
            details={
                "message": f"Demand quantity must be a positive integer, got {quantity!r}",
                "type_component_id": str(demand.type_component_id),
            },
        )


def available_quantity(candidate: StockCandidate, planned: Mapping | None = None) -> int:
    already_planned = (planned or {}).get(candidate.id, 0)
    return max((candidate.quantity_in_stock or 0) - (candidate.quantity_reserved or 0) - already_planned, 0)


def plan(demand: Demand, candidates: Sequence[StockCandidate], planned: Mapping | None = None) -> AllocationPlan:
    _validate_demand(demand)
    remaining = demand.quantity
    allocations: list[Allocation] = []
    for candidate in candidates:
        if remaining == 0:
            break
        available = available_quantity(candidate, planned)
        if available == 0:
            continue
        take = min(available, remaining)
        allocations.append(Allocation(stock_id=candidate.id, quantity=take))
        remaining -= take
    return AllocationPlan(demand=demand, allocations=tuple(allocations), shortfall=remaining)


def plan_many(demands: Iterable[Demand], candidates_by_type: Mapping[Any, Sequence[StockCandidate]]) -> RequestPlan:
    """Plan every demand of a request against shared candidates without writing anything."""
    planned: dict = {}
    plans: list[AllocationPlan] = []
    for demand in demands:
        candidates = candidates_by_type.get(demand.type_component_id, ())
        result = plan(demand, candidates, planned)
        for allocation in result.allocations:
            planned[allocation.stock_id] = planned.get(allocation.stock_id, 0) + allocation.quantity
        plans.append(result)
    return RequestPlan(plans=tuple(plans), planned=planned)


def group_candidates_by_type(candidates: Iterable[StockCandidate]) -> dict:
    """Bucket candidates by component type, keeping their incoming order."""
    grouped: dict = {}
    for candidate in candidates:
        grouped.setdefault(candidate.type_component_id, []).append(candidate)
    return grouped


def shortfall_error(request_plan: RequestPlan) -> AppError:
    first = request_plan.shortfalls[0]
    return AppError(
        ErrorCatalog.INSUFFICIENT_STOCK,
        details={
            "message": (
                f"Not enough stock for component {first.demand.type_component_id}. "
                f"Requested: {first.demand.quantity}, Reserved: {first.allocated}"
            ),
            "shortfalls": [
                {
                    "type_component_id": str(item.demand.type_component_id),
                    "requested": item.demand.quantity,
                    "allocatable": item.allocated,
                    "shortfall": item.shortfall,
                }
                for item in request_plan.shortfalls
            ],
        },
    )
