"""
Ledger read models: per-case financials, synthesized transaction rows and
dashboard aggregates.

There are no stored transactions or balances.  Every row and figure is
derived at query time from case money fields through
``agency_kernel.domain.ledger``, so profit shown on a dashboard and profit
in an export come from the same formula.

A "paid case" is one with ``paid_at`` set.
"""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agency_kernel.domain.ledger import (
    CaseFinancials,
    LedgerSummary,
    TransactionRow,
    net_profit,
    summarize,
    synthesize_transactions,
)
from agency_kernel.domain.payout import PayoutStatus
from agency_kernel.domain.status_graph import CaseStatus
from agency_kernel.domain.values import Balance, Money
from agency_kernel.exceptions import CaseNotFoundError
from agency_kernel.models.case import CaseRecord
from agency_kernel.models.payout import PayoutRequest
from agency_kernel.selectors.base import BaseSelector
from agency_kernel.selectors.case_selector import CaseSelector


@dataclass(frozen=True)
class PayoutTotals:
    """Payout request amounts in one currency, by request status."""

    currency: str
    pending: Money
    approved: Money
    paid: Money
    rejected: Money


@dataclass(frozen=True)
class DashboardSummary:
    ledger: dict[str, LedgerSummary] = field(default_factory=dict)
    payouts: dict[str, PayoutTotals] = field(default_factory=dict)
    cases_by_status: dict[CaseStatus, int] = field(default_factory=dict)
    paid_case_count: int = 0

    def net(self, currency: str) -> Balance:
        summary = self.ledger.get(currency)
        return summary.net if summary else Balance.zero(currency)


class LedgerSelector(BaseSelector):
    def __init__(self, session: Session):
        super().__init__(session)

    def case_financials(self, case_id: UUID) -> CaseFinancials:
        case = self.session.get(CaseRecord, case_id, populate_existing=True)
        if case is None:
            raise CaseNotFoundError(str(case_id))
        return case.financials()

    def net_profit(self, case_id: UUID) -> Balance:
        return net_profit(self.case_financials(case_id))

    def transactions(
        self,
        include_unpaid: bool = False,
        currency: str | None = None,
        case_id: UUID | None = None,
    ) -> list[TransactionRow]:
        """
        Synthesized transaction rows, one per non-zero money field.

        By default only paid cases are reported; ``include_unpaid`` adds
        the rest as ``pending`` rows.
        """
        stmt = select(CaseRecord)
        if not include_unpaid:
            stmt = stmt.where(CaseRecord.paid_at.is_not(None))
        if currency is not None:
            stmt = stmt.where(CaseRecord.currency == currency)
        if case_id is not None:
            stmt = stmt.where(CaseRecord.id == case_id)
        stmt = stmt.order_by(CaseRecord.paid_at, CaseRecord.created_at)

        rows: list[TransactionRow] = []
        for case in self.session.execute(stmt).scalars():
            rows.extend(synthesize_transactions(case.financials()))
        return rows

    def summary(self, include_unpaid: bool = False) -> dict[str, LedgerSummary]:
        return summarize(self.transactions(include_unpaid=include_unpaid))

    def payout_totals(self) -> dict[str, PayoutTotals]:
        rows = self.session.execute(
            select(
                PayoutRequest.currency,
                PayoutRequest.status,
                func.sum(PayoutRequest.amount_minor),
            ).group_by(PayoutRequest.currency, PayoutRequest.status)
        ).all()

        grouped: dict[str, dict[str, int]] = {}
        for currency, status, total in rows:
            grouped.setdefault(currency, {})[status] = int(total or 0)

        return {
            currency: PayoutTotals(
                currency=currency,
                pending=Money(by_status.get(PayoutStatus.PENDING.value, 0), currency),
                approved=Money(by_status.get(PayoutStatus.APPROVED.value, 0), currency),
                paid=Money(by_status.get(PayoutStatus.PAID.value, 0), currency),
                rejected=Money(by_status.get(PayoutStatus.REJECTED.value, 0), currency),
            )
            for currency, by_status in sorted(grouped.items())
        }

    def dashboard(self) -> DashboardSummary:
        paid_cases = self.session.execute(
            select(func.count()).select_from(CaseRecord).where(CaseRecord.paid_at.is_not(None))
        ).scalar_one()
        return DashboardSummary(
            ledger=self.summary(),
            payouts=self.payout_totals(),
            cases_by_status=CaseSelector(self.session).counts_by_status(),
            paid_case_count=paid_cases,
        )
