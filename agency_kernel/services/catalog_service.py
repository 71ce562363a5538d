"""
CatalogService -- read-only lookup of current service pricing.

Catalog rows are read fresh (``populate_existing``) at attach time and
never cached beyond the single operation that consumes them, so a
repricing committed a moment ago is what the next snapshot locks in.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from agency_kernel.exceptions import InactiveServiceError, ServiceNotFoundError
from agency_kernel.logging_config import get_logger
from agency_kernel.models.service import MasterService

logger = get_logger("services.catalog")


class CatalogService:
    def __init__(self, session: Session):
        self._session = session

    def get_services(self, service_ids: Sequence[UUID]) -> list[MasterService]:
        """
        Current catalog rows for ``service_ids``, in the order given.

        Raises:
            ServiceNotFoundError: An id is not in the catalog.
            InactiveServiceError: A service has been retired.
        """
        if not service_ids:
            return []
        rows = self._session.execute(
            select(MasterService)
            .where(MasterService.id.in_(list(service_ids)))
            .execution_options(populate_existing=True)
        ).scalars().all()
        by_id = {row.id: row for row in rows}

        services = []
        for service_id in service_ids:
            service = by_id.get(service_id)
            if service is None:
                raise ServiceNotFoundError(str(service_id))
            if not service.is_active:
                logger.warning("inactive_service_requested", extra={"service_id": str(service_id)})
                raise InactiveServiceError(str(service_id))
            services.append(service)
        return services

    def list_active(self) -> list[MasterService]:
        return list(
            self._session.execute(
                select(MasterService)
                .where(MasterService.is_active.is_(True))
                .order_by(MasterService.sort_order, MasterService.service_name)
            ).scalars()
        )
