"""
Module: cylinder_kernel.services.receivables_ledger_service
Responsibility: RecomputeReceivables, SeedReceivables and
    GetCurrentReceivables for driver cash and cylinder receivables.
Architecture position: Kernel > Services.  Reads through selectors, computes
    with cylinder_engines.receivables, writes through db.upsert().  Never
    commits.

Invariants enforced:
    - Exactly one row per (tenant, driver, date); recompute overwrites.
    - Idempotent: a recompute reads the prior from rows dated before the
      target date (or from the anchor's own opening values), never from the
      row it is about to overwrite.
    - Seeding writes an onboarding anchor whose opening equals its closing;
      a later recompute of that date layers the day's sales on the seed.
    - Negative closings are stored as computed and reported as anomalies.

Failure modes:
    - DriverNotFoundError for an unknown driver.
    - InvalidTenantError for a malformed tenant id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.orm import Session

from cylinder_engines.receivables import (
    ReceivablePriorSource,
    StoredReceivable,
    compute_receivable_day,
    resolve_receivable_prior,
)
from cylinder_kernel.db.upsert import upsert
from cylinder_kernel.domain.anomalies import LedgerAnomaly, log_anomalies
from cylinder_kernel.domain.balances import ReceivableBalance
from cylinder_kernel.domain.clock import Clock, SystemClock
from cylinder_kernel.domain.keys import validate_tenant_id
from cylinder_kernel.exceptions import FactValidationError
from cylinder_kernel.logging_config import LogContext, get_logger
from cylinder_kernel.models.balances import RECEIVABLE_BALANCE_KEY, ReceivableBalanceModel
from cylinder_kernel.selectors.balances import BalanceSelector
from cylinder_kernel.selectors.catalog import CatalogSelector
from cylinder_kernel.selectors.facts import FactSelector

logger = get_logger("services.receivables_ledger")

ZERO = Decimal("0")


@dataclass(frozen=True)
class ReceivableRecomputeResult:
    balance: ReceivableBalance
    anomalies: tuple[LedgerAnomaly, ...] = field(default=())


def _stored(balance: ReceivableBalance | None) -> StoredReceivable | None:
    if balance is None:
        return None
    return StoredReceivable(
        balance_date=balance.balance_date,
        opening_cash=balance.opening_cash,
        opening_cylinders=balance.opening_cylinders,
        closing_cash=balance.closing_cash,
        closing_cylinders=balance.closing_cylinders,
        is_onboarding_anchor=balance.is_onboarding_anchor,
    )


class ReceivablesLedgerService:
    """
    Daily receivables ledger per driver.

    Contract:
        Receives Session and Clock via constructor injection.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
        self._catalog = CatalogSelector(session)
        self._facts = FactSelector(session)
        self._balances = BalanceSelector(session)

    def recompute(
        self, tenant_id: str, driver_id: UUID, balance_date: date
    ) -> ReceivableRecomputeResult:
        """Recompute the driver's receivable balance for ``balance_date``."""
        tenant_id = validate_tenant_id(tenant_id)
        self._catalog.get_driver(tenant_id, driver_id)

        with LogContext.bind(
            tenant_id=tenant_id,
            driver_id=driver_id,
            ledger_date=balance_date.isoformat(),
        ):
            prior = resolve_receivable_prior(
                balance_date=balance_date,
                existing=_stored(self._balances.receivable_on(tenant_id, driver_id, balance_date)),
                latest_before=_stored(
                    self._balances.latest_receivable_before(tenant_id, driver_id, balance_date)
                ),
                earliest=_stored(self._balances.earliest_receivable(tenant_id, driver_id)),
            )
            computation = compute_receivable_day(
                tenant_id=tenant_id,
                driver_id=driver_id,
                balance_date=balance_date,
                prior=prior,
                sales=self._facts.sales_on(tenant_id, balance_date, driver_id=driver_id),
            )

            balance = ReceivableBalance(
                tenant_id=tenant_id,
                driver_id=driver_id,
                balance_date=balance_date,
                opening_cash=computation.opening_cash,
                opening_cylinders=computation.opening_cylinders,
                cash_change=computation.cash_change,
                cylinder_change=computation.cylinder_change,
                closing_cash=computation.closing_cash,
                closing_cylinders=computation.closing_cylinders,
                is_onboarding_anchor=prior.source == ReceivablePriorSource.ONBOARDING_ANCHOR,
            )
            self._write(balance)

            log_anomalies(logger, computation.anomalies)
            logger.info(
                "receivables_recomputed",
                extra={
                    "prior_source": computation.prior_source.value,
                    "closing_cash": balance.closing_cash,
                    "closing_cylinders": balance.closing_cylinders,
                },
            )

        return ReceivableRecomputeResult(balance=balance, anomalies=computation.anomalies)

    def seed(
        self,
        tenant_id: str,
        driver_id: UUID,
        balance_date: date,
        cash: Decimal | str | int,
        cylinders: int,
    ) -> ReceivableBalance:
        """
        Write the onboarding anchor for a driver.

        opening = closing = the given values, changes = 0.  Re-seeding the
        same date replaces the anchor.

        Raises:
            FactValidationError: if ``cash`` is not a finite decimal or
                ``cylinders`` is not an integer.
        """
        tenant_id = validate_tenant_id(tenant_id)
        self._catalog.get_driver(tenant_id, driver_id)
        try:
            cash_amount = Decimal(str(cash))
        except InvalidOperation:
            raise FactValidationError("SeedReceivables", "cash", f"not a decimal: {cash!r}") from None
        if not cash_amount.is_finite():
            raise FactValidationError("SeedReceivables", "cash", "must be finite")
        if isinstance(cylinders, bool) or not isinstance(cylinders, int):
            raise FactValidationError(
                "SeedReceivables", "cylinders", f"must be an integer, got {cylinders!r}"
            )

        balance = ReceivableBalance(
            tenant_id=tenant_id,
            driver_id=driver_id,
            balance_date=balance_date,
            opening_cash=cash_amount,
            opening_cylinders=cylinders,
            cash_change=ZERO,
            cylinder_change=0,
            closing_cash=cash_amount,
            closing_cylinders=cylinders,
            is_onboarding_anchor=True,
        )
        self._write(balance)

        logger.info(
            "receivables_seeded",
            extra={
                "tenant_id": tenant_id,
                "driver_id": str(driver_id),
                "balance_date": balance_date,
                "cash": cash_amount,
                "cylinders": cylinders,
            },
        )
        return balance

    def current(self, tenant_id: str, driver_id: UUID) -> ReceivableBalance:
        """Latest balance for the driver, or zeros if none is recorded."""
        tenant_id = validate_tenant_id(tenant_id)
        self._catalog.get_driver(tenant_id, driver_id)
        latest = self._balances.latest_receivable(tenant_id, driver_id)
        if latest is None:
            return ReceivableBalance.zero(tenant_id, driver_id)
        return latest

    def _write(self, balance: ReceivableBalance) -> None:
        upsert(
            self.session,
            ReceivableBalanceModel.__table__,
            RECEIVABLE_BALANCE_KEY,
            {
                "tenant_id": balance.tenant_id,
                "driver_id": balance.driver_id,
                "balance_date": balance.balance_date,
                "opening_cash": balance.opening_cash,
                "opening_cylinders": balance.opening_cylinders,
                "cash_change": balance.cash_change,
                "cylinder_change": balance.cylinder_change,
                "closing_cash": balance.closing_cash,
                "closing_cylinders": balance.closing_cylinders,
                "is_onboarding_anchor": balance.is_onboarding_anchor,
                "computed_at": self.clock.now(),
            },
        )
        self.session.flush()
