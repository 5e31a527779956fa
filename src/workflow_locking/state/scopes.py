"""Per-state query helpers.

For each declared state this module builds one async filter returning the
records whose state column equals that state, e.g. the ``with_pending_state``
scope of a workflow declaring ``pending``. Scopes are generated once, when
the state set is declared, into a plain mapping keyed by state name.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List

from workflow_locking.state.guard import RecordStore
from workflow_locking.state.models import Record, WorkflowStates, state_value


logger = logging.getLogger(__name__)

StateScope = Callable[[], Awaitable[List[Record]]]


def scope_name(state: Any) -> str:
    """Return the conventional scope name for a state.

    Example:
        >>> scope_name("pending")
        'with_pending_state'
    """
    return f"with_{state_value(state)}_state"


def _make_scope(store: RecordStore, workflow_column: str, state: str) -> StateScope:
    async def scope() -> List[Record]:
        records = await store.find_by_state(workflow_column, state)
        logger.debug(
            "Ran state scope",
            extra={"scope": scope_name(state), "count": len(records)},
        )
        return records

    scope.__name__ = scope_name(state)
    return scope


def build_state_scopes(
    store: RecordStore,
    workflow: WorkflowStates,
    workflow_column: str = "workflow_state",
) -> Dict[str, StateScope]:
    """Build one query scope per declared state.

    Args:
        store: The record store to query.
        workflow: The declared states.
        workflow_column: Name of the state column.

    Returns:
        Mapping of state name to a zero-argument coroutine function.

    Example:
        >>> scopes = build_state_scopes(store, WorkflowStates(states=["pending", "active"]))
        >>> active = await scopes["active"]()
    """
    return {
        state: _make_scope(store, workflow_column, state)
        for state in workflow.states
    }
