"""
Shared plumbing for mode controllers.

A controller issues at most one external request at a time and owns it until
it resolves. ``teardown()`` cancels the in-flight request; a response that
still arrives afterwards is discarded instead of touching the session.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger

from nemesis.agents.provider import DecisionProvider
from nemesis.core.session_store import SessionStore

T = TypeVar("T")


class ControllerClosed(Exception):
    """The controller was torn down while (or before) waiting on the service."""


class ModeController:
    """Base class for Battle, Exam and Dialogue controllers."""

    mode_name = "mode"

    def __init__(self, store: SessionStore, provider: DecisionProvider):
        self.store = store
        self.provider = provider
        self._inflight: asyncio.Future | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def _request(self, awaitable: Awaitable[T]) -> T:
        """
        Run one external request owned by this controller.

        Raises ControllerClosed if the controller is (or becomes) torn down;
        subclasses catch it and return their "nothing happened" value.
        """
        if self._closed:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            elif asyncio.isfuture(awaitable):
                awaitable.cancel()
            raise ControllerClosed(self.mode_name)

        future = asyncio.ensure_future(awaitable)
        self._inflight = future
        try:
            result = await future
        except asyncio.CancelledError:
            if self._closed:
                raise ControllerClosed(self.mode_name) from None
            raise
        finally:
            if self._inflight is future:
                self._inflight = None

        if self._closed:
            logger.debug(f"Discarding late {self.mode_name} response after teardown")
            raise ControllerClosed(self.mode_name)
        return result

    def teardown(self) -> None:
        """Release every resource; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._on_teardown()
        logger.debug(f"{self.mode_name} controller torn down")

    def _on_teardown(self) -> None:
        pass
