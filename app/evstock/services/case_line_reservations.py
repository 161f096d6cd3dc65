from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from app.evstock.core.error_catalog import AppError, ErrorCatalog
from app.evstock.core.ids import as_uuid
from app.evstock.core.logging import log_json
from app.evstock.core.metrics import metrics
from app.evstock.core.statuses import CaseLineStatus, ReservationStatus
from app.evstock.db.models import CaseLine, StockReservation
from app.evstock.db.session import transaction
from app.evstock.repos.case_lines import CaseLineRepository
from app.evstock.repos.reservations import ReservationRepository
from app.evstock.repos.stock import StockRepository
from app.evstock.services import allocation
from app.evstock.services.audit import AuditEventPayload, AuditService
from app.evstock.services.reservation_ledger import ReservationLedger
from app.evstock.services.stock_ledger import StockLedger

logger = logging.getLogger("evstock.case_lines")


@dataclass
class CaseLineReservation:
    case_line: CaseLine
    reservations: list[StockReservation]

    @property
    def quantity_reserved(self) -> int:
        return sum(reservation.quantity_reserved for reservation in self.reservations)


class CaseLineReservationService:
    """Reserves parts for repair case lines from the service center's own warehouses."""

    def __init__(
        self,
        db,
        *,
        case_lines: CaseLineRepository,
        stocks: StockRepository,
        reservation_ledger: ReservationLedger,
        audit: AuditService | None = None,
        trace_id: str | None = None,
    ):
        self.db = db
        self.case_lines = case_lines
        self.stocks = stocks
        self.reservation_ledger = reservation_ledger
        self.audit = audit
        self.trace_id = trace_id

    def _locked_case_line(self, case_line_id, service_center_id) -> CaseLine:
        case_line = self.case_lines.get(case_line_id, lock=True)
        if case_line is None or case_line.service_center_id != service_center_id:
            raise AppError(ErrorCatalog.NOT_FOUND, details={"message": f"Case line {case_line_id} not found"})
        return case_line

    def _record(self, action: str, *, case_line_ids: list, units: int, company_id, user_id, role_name) -> None:
        log_json(
            logger,
            {
                "event": f"case_line_{action}",
                "case_line_ids": [str(case_line_id) for case_line_id in case_line_ids],
                "units": units,
                "company_id": str(company_id),
                "user_id": str(user_id) if user_id is not None else None,
                "trace_id": self.trace_id,
            },
        )
        if self.audit is None:
            return
        for case_line_id in case_line_ids:
            self.audit.record_event(
                AuditEventPayload(
                    company_id=str(company_id),
                    user_id=str(user_id) if user_id is not None else None,
                    trace_id=self.trace_id,
                    action=f"case_line.{action}",
                    entity_type="case_line",
                    entity_id=str(case_line_id),
                    metadata={"units": units},
                    actor_role=role_name,
                )
            )

    def reserve(
        self,
        case_line_ids: Iterable,
        *,
        company_id,
        service_center_id,
        user_id=None,
        role_name: str | None = None,
    ) -> list[CaseLineReservation]:
        ids = [as_uuid(case_line_id, "case_line_id") for case_line_id in case_line_ids or []]
        if not ids:
            raise AppError(ErrorCatalog.BAD_REQUEST, details={"message": "case_line_ids must be a non-empty list"})
        if len(set(ids)) != len(ids):
            raise AppError(ErrorCatalog.BAD_REQUEST, details={"message": "case_line_ids must not contain duplicates"})
        company_uuid = as_uuid(company_id, "company_id")
        service_center_uuid = as_uuid(service_center_id, "service_center_id")

        with transaction(self.db):
            case_lines = [self._locked_case_line(case_line_id, service_center_uuid) for case_line_id in ids]
            for case_line in case_lines:
                if case_line.status not in CaseLineStatus.RESERVABLE:
                    raise AppError(
                        ErrorCatalog.CONFLICT,
                        details={
                            "message": f"Case line {case_line.id} cannot reserve stock in status {case_line.status}"
                        },
                    )
                if self.reservation_ledger.find_by_case_line_id(case_line.id):
                    raise AppError(
                        ErrorCatalog.CONFLICT,
                        details={"message": f"Case line {case_line.id} already has reserved stock"},
                    )

            candidates = self.stocks.list_candidates(
                {case_line.type_component_id for case_line in case_lines},
                company_id=company_uuid,
                service_center_id=service_center_uuid,
                lock=True,
            )
            request_plan = allocation.plan_many(
                [
                    allocation.Demand(type_component_id=case_line.type_component_id, quantity=case_line.quantity, key=case_line.id)
                    for case_line in case_lines
                ],
                allocation.group_candidates_by_type(candidates),
            )
            if not request_plan.satisfied:
                raise allocation.shortfall_error(request_plan)

            results = []
            for case_line, line_plan in zip(case_lines, request_plan.plans):
                reservations = self.reservation_ledger.create_many(line_plan.allocations, case_line_id=case_line.id)
                results.append(CaseLineReservation(case_line=case_line, reservations=reservations))
            units = sum(result.quantity_reserved for result in results)

        metrics.record_units_reserved("case_line", units)
        self._record("reserve", case_line_ids=ids, units=units, company_id=company_uuid, user_id=user_id, role_name=role_name)
        return results

    def release(
        self,
        case_line_id,
        *,
        company_id,
        service_center_id,
        user_id=None,
        role_name: str | None = None,
    ) -> list[StockReservation]:
        case_line_uuid = as_uuid(case_line_id, "case_line_id")
        service_center_uuid = as_uuid(service_center_id, "service_center_id")

        with transaction(self.db):
            case_line = self._locked_case_line(case_line_uuid, service_center_uuid)
            reservations = self.reservation_ledger.find_by_case_line_id(case_line.id, lock=True)
            if not reservations:
                raise AppError(
                    ErrorCatalog.CONFLICT,
                    details={"message": f"Case line {case_line.id} has no reserved stock"},
                )
            released = self.reservation_ledger.cancel([reservation.id for reservation in reservations])
            units = sum(reservation.quantity_reserved for reservation in released)

        self._record("release", case_line_ids=[case_line_uuid], units=units, company_id=company_id, user_id=user_id, role_name=role_name)
        return released


def build_case_line_reservations(db, *, trace_id: str | None = None, audit: bool = True) -> CaseLineReservationService:
    stocks = StockRepository(db)
    stock_ledger = StockLedger(db, stocks)
    return CaseLineReservationService(
        db,
        case_lines=CaseLineRepository(db),
        stocks=stocks,
        reservation_ledger=ReservationLedger(db, stock_ledger, ReservationRepository(db)),
        audit=AuditService(db) if audit else None,
        trace_id=trace_id,
    )
