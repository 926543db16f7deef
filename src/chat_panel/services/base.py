"""Abstract background service lifecycle."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Service(ABC):
    """Base class for services started and stopped with the application."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    async def health_check(self) -> bool:
        return True

