"""Service lifecycle manager."""

from __future__ import annotations

from apex_claw.log import get_logger
from apex_claw.services.base import Service

logger = get_logger(__name__)


class ServiceManager:
    """Starts services in registration order and stops them in reverse."""

    def __init__(self, critical: list[Service] | None = None, optional: list[Service] | None = None):
        self._critical = list(critical or [])
        self._optional = list(optional or [])
        self._started: list[Service] = []

    def add(self, service: Service, critical: bool = True) -> None:
        (self._critical if critical else self._optional).append(service)

    async def start_all(self) -> None:
        """Start all services. Non-critical services log errors but don't block startup."""
        for service in self._critical:
            await service.start()
            self._started.append(service)
        for service in self._optional:
            try:
                await service.start()
                self._started.append(service)
            except Exception as e:
                logger.warning("service_unavailable", service=service.service_name, error=str(e))
        logger.info("all_services_started", services=[s.service_name for s in self._started])

    async def stop_all(self) -> None:
        """Stop all services gracefully."""
        for service in reversed(self._started):
            try:
                await service.stop()
            except Exception as e:
                logger.error("service_stop_error", service=service.service_name, error=str(e))
        self._started.clear()
        logger.info("all_services_stopped")

    async def health_check_all(self) -> dict[str, bool]:
        """Check health of all services."""
        return {s.service_name: await s.health_check() for s in self._critical + self._optional}
