"""Payout request and transaction-log queries."""

from uuid import UUID

from sqlalchemy import select

from agency_kernel.domain.payout import PayoutRequestInfo, PayoutStatus, PayoutTransactionInfo
from agency_kernel.exceptions import PayoutNotFoundError
from agency_kernel.models.payout import PayoutRequest, PayoutTransaction
from agency_kernel.selectors.base import BaseSelector


class PayoutSelector(BaseSelector):
    def get_request(self, request_id: UUID) -> PayoutRequestInfo:
        request = self.session.get(PayoutRequest, request_id, populate_existing=True)
        if request is None:
            raise PayoutNotFoundError(str(request_id))
        return request.to_dto()

    def list_requests(
        self,
        status: PayoutStatus | None = None,
        requestor_id: UUID | None = None,
    ) -> list[PayoutRequestInfo]:
        stmt = select(PayoutRequest)
        if status is not None:
            stmt = stmt.where(PayoutRequest.status == PayoutStatus(status).value)
        if requestor_id is not None:
            stmt = stmt.where(PayoutRequest.requestor_id == requestor_id)
        rows = self.session.execute(stmt.order_by(PayoutRequest.requested_at)).scalars()
        return [row.to_dto() for row in rows]

    def awaiting_decision(self) -> list[PayoutRequestInfo]:
        """Pending requests, flagged (still inside the lock window) last."""
        pending = self.list_requests(PayoutStatus.PENDING)
        return sorted(pending, key=lambda r: (r.eligibility_flagged, r.requested_at))

    def transactions(self, request_id: UUID | None = None) -> list[PayoutTransactionInfo]:
        stmt = select(PayoutTransaction)
        if request_id is not None:
            stmt = stmt.where(PayoutTransaction.payout_request_id == request_id)
        rows = self.session.execute(stmt.order_by(PayoutTransaction.paid_at)).scalars()
        return [row.to_dto() for row in rows]
