"""Lifecycle interface for background services (heartbeat, FE version refresh)."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Service(ABC):
    """A long-lived component started before the frontend and stopped after it."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Key used in health reports and log lines."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Begin background work. Raising aborts startup for critical services."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop background work; safe to call more than once."""
        ...

    async def health_check(self) -> bool:
        return True
