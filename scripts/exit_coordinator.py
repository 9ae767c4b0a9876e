#!/usr/bin/env python3
"""
Exit coordination for the update engine client.

Several sources can end the process: a failed synchronous call, a bind
failure, the terminal onPayloadApplicationComplete notification, or the
plain "nothing left to wait for" path. All of them go through
ExitCoordinator.request_exit(). The first request wins and posts a deferred
termination task onto the event loop; later requests change nothing.

The decided flag is checked and set without an await in between, so on a
single event loop thread no two sources can both believe they are first.
"""

import asyncio
import logging
from typing import Optional

from update_engine_status import EX_FAILURE, EX_OK, Status

logger = logging.getLogger(__name__)


class ExitCoordinator:
    """Decides the process exit code exactly once.

    Usage:
        coordinator = ExitCoordinator(asyncio.get_running_loop())
        ret = coordinator.request_exit(EX_OK)
        if ret != EX_OK:
            return ret
        return await coordinator.wait()
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._decided = False
        self._exit_code: Optional[int] = None
        self._done: asyncio.Future = loop.create_future()

    @property
    def decided(self) -> bool:
        return self._decided

    @property
    def exit_code(self) -> Optional[int]:
        """The decided exit code, None while pending"""
        return self._exit_code

    def request_exit(self, code: int) -> int:
        """Schedule process exit with code, unless an exit is already decided.

        Returns:
            EX_OK if the termination task is posted (or an earlier request
            already posted one), EX_FAILURE if the loop rejected the task.
        """
        if self._decided:
            logger.debug(f"Exit already decided ({self._exit_code}), ignoring {code}")
            return EX_OK
        self._decided = True
        self._exit_code = code

        try:
            self._loop.call_soon(self._quit, code)
        except RuntimeError as e:
            logger.error(f"Failed to schedule exit: {e}")
            return EX_FAILURE
        return EX_OK

    def request_exit_for_status(self, status: Status) -> int:
        """Exit with the result of a synchronous call."""
        if status.is_ok():
            return self.request_exit(EX_OK)
        if not self._decided:
            logger.error(str(status))
        return self.request_exit(status.exit_code)

    def _quit(self, code: int) -> None:
        if not self._done.done():
            self._done.set_result(code)

    async def wait(self) -> int:
        """Run until the termination task fires and return its exit code."""
        return await self._done
