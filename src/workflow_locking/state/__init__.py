"""Guarded workflow state transitions and persistence.

A record's workflow state is written with a compare-and-swap on its state
column under a row lock, so concurrent transitions from the same observed
state cannot both succeed:
- pending → active  (first writer wins)
- pending → archived  (loser gets ConcurrentModificationError)

State is persisted to PostgreSQL through the RecordStore protocol.
"""

from workflow_locking.state.models import (
    LockToken,
    Record,
    TransitionAttempt,
    WorkflowStates,
    state_value,
)
from workflow_locking.state.guard import (
    ConcurrentModificationError,
    RecordNotFoundError,
    RecordStore,
    StateOracle,
    StateTransitionGuard,
    ValidationFailedError,
)
from workflow_locking.state.oracle import DeclaredStateOracle
from workflow_locking.state.scopes import (
    StateScope,
    build_state_scopes,
    scope_name,
)
from workflow_locking.state.repository import (
    LockTimeoutError,
    PostgresRecordStore,
    StoreUnavailableError,
)

__all__ = [
    # Models
    "LockToken",
    "Record",
    "TransitionAttempt",
    "WorkflowStates",
    "state_value",
    # Guard
    "ConcurrentModificationError",
    "RecordNotFoundError",
    "RecordStore",
    "StateOracle",
    "StateTransitionGuard",
    "ValidationFailedError",
    # Oracle
    "DeclaredStateOracle",
    # Scopes
    "StateScope",
    "build_state_scopes",
    "scope_name",
    # Repository
    "LockTimeoutError",
    "PostgresRecordStore",
    "StoreUnavailableError",
]
