"""Wiring for a PostgreSQL-backed transition guard.

Loads settings, configures logging, connects the record store and yields a
ready StateTransitionGuard. The pool is closed when the block exits.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

from workflow_locking.config import (
    WorkflowLockingSettings,
    get_settings,
    log_configuration,
)
from workflow_locking.state.guard import StateOracle, StateTransitionGuard
from workflow_locking.state.repository import PostgresRecordStore


logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_guard(
    oracle: StateOracle,
    settings: Optional[WorkflowLockingSettings] = None,
    state_columns: Optional[Sequence[str]] = None,
) -> AsyncIterator[StateTransitionGuard]:
    """Build a guard over a connected PostgresRecordStore.

    Args:
        oracle: The workflow's state oracle.
        settings: Configuration; read from the environment when omitted.
        state_columns: All state columns of the table, when it holds more
            than the configured workflow column.

    Example:
        >>> async with open_guard(oracle) as guard:
        ...     record = await guard.create({"title": "Draft"})
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    log_configuration(settings)

    store = PostgresRecordStore.from_settings(settings, state_columns=state_columns)
    await store.connect()
    try:
        yield StateTransitionGuard(
            store,
            oracle,
            workflow_column=settings.workflow_column,
        )
    finally:
        await store.disconnect()
        logger.info("Transition guard closed")
