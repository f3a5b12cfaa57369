"""Frontend version tracking for the ``X-FE-Version`` header."""

from __future__ import annotations

import re

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from apex_claw.log import get_logger
from apex_claw.services.base import Service

logger = get_logger(__name__)

FE_VERSION_PATTERN = re.compile(r"prod-fe-[\.\d]+")


class FeVersionTracker(Service):
    """Scrapes the upstream web page for its frontend build id.

    Fetched once at start, then refreshed on an interval. A failed refresh
    keeps the last known value.
    """

    def __init__(self, http: httpx.AsyncClient, refresh_seconds: int = 3600):
        self._http = http
        self._refresh_seconds = refresh_seconds
        self._version = ""
        self._scheduler = AsyncIOScheduler()

    @property
    def service_name(self) -> str:
        return "fe_version"

    @property
    def version(self) -> str:
        return self._version

    async def refresh(self) -> str:
        try:
            response = await self._http.get("/")
        except httpx.TransportError as e:
            logger.warning("fe_version_fetch_error", error=str(e))
            return self._version

        match = FE_VERSION_PATTERN.search(response.text)
        if match:
            self._version = match.group(0)
            logger.info("fe_version_updated", version=self._version)
        else:
            logger.warning("fe_version_not_found", status=response.status_code)
        return self._version

    async def start(self) -> None:
        await self.refresh()
        self._scheduler.add_job(
            self.refresh,
            IntervalTrigger(seconds=self._refresh_seconds),
            id="fe_version_refresh",
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def health_check(self) -> bool:
        return bool(self._version)
