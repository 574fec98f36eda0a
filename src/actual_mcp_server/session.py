"""
Session gate - owns the single budget session of this process.

Opening a session is expensive and has side effects (the budget file is
downloaded into the data directory and the server is authenticated
against), so it must happen at most once, no matter how many tool calls
arrive while it is in progress. Every tool call goes through
SessionGate.ensure_ready() before touching the store.

State machine:

    UNINITIALIZED --ensure_ready--> INITIALIZING --ok--> READY
                                                 \\--error--> FAILED
    READY  --shutdown--> UNINITIALIZED
    FAILED --shutdown--> UNINITIALIZED

A failure is sticky: it is re-raised to every later caller until
shutdown() clears it, so a misconfigured server is not hit on every call.
"""

import asyncio
import logging
from enum import Enum
from types import TracebackType
from typing import Optional

from .config import Settings
from .store import BudgetStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of the budget session."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class SessionGate:
    """
    Lazy, at-most-once, race-safe initialization of the budget session.

    Setup runs in its own task. Every caller, the first one included,
    waits on that task, so all of them are woken when it settles and all
    observe the same outcome. A caller that is cancelled while waiting
    does not cancel the setup for the others.
    """

    def __init__(self, store: BudgetStore, settings: Settings):
        self._store = store
        self._settings = settings
        self._state = SessionState.UNINITIALIZED
        self._error: Optional[Exception] = None
        self._error_tb: Optional[TracebackType] = None
        self._setup_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error(self) -> Optional[Exception]:
        """The captured setup error while FAILED, else None."""
        return self._error

    @property
    def store(self) -> BudgetStore:
        return self._store

    async def ensure_ready(self) -> None:
        """
        Make sure the budget session is open and loaded.

        Raises:
            The original setup error, unchanged, if setup failed now or
            on an earlier attempt.
        """
        if self._state is SessionState.READY:
            return
        if self._state is SessionState.FAILED:
            # Reset to the setup traceback so repeated raises don't grow it.
            raise self._error.with_traceback(self._error_tb)

        if self._setup_task is None:
            self._state = SessionState.INITIALIZING
            self._setup_task = asyncio.create_task(self._setup())

        # The outcome comes from the task itself, not from self._state:
        # shutdown() may reset the gate before this caller is resumed.
        await asyncio.shield(self._setup_task)

    async def shutdown(self) -> None:
        """Close the session if it is open and clear a captured failure. No-op otherwise."""
        if self._state is SessionState.READY:
            await self._store.close()
            logger.info("Budget session closed")
        elif self._state is SessionState.FAILED:
            logger.info("Clearing failed budget session: %s", self._error)
        else:
            return

        self._state = SessionState.UNINITIALIZED
        self._error = None
        self._error_tb = None
        self._setup_task = None

    async def _setup(self) -> None:
        """Open the session and load the budget. Records a failure, then re-raises it."""
        logger.info("Opening budget %s on %s", self._settings.budget_id, self._settings.server_url)
        try:
            await self._store.open(self._settings)
            await self._store.load_budget(self._settings.budget_id)
        except Exception as e:
            self._error = e
            self._error_tb = e.__traceback__
            self._state = SessionState.FAILED
            logger.error("Budget session setup failed: %s", e)
            raise

        self._state = SessionState.READY
        logger.info("Budget session ready")
