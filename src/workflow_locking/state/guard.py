"""Optimistic-locking transition guard.

This module implements the StateTransitionGuard class that persists a
workflow state change on a stored record so that a transition which raced
and lost is detected instead of silently overwriting the winner.

A transition on an already stored record is applied as:

1. Validate the record (no writes on failure)
2. Take an exclusive row lock on the record id
3. ``UPDATE ... SET state = new WHERE id = ? AND state = old``
4. Zero rows affected: raise ConcurrentModificationError
5. One row affected: save the remaining attributes under the same lock

The guard depends on a RecordStore for persistence and a StateOracle for
the business-level current state and validation. The PostgreSQL store is
implemented separately in repository.py.
"""

import logging
from typing import (
    Any,
    AsyncContextManager,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)

from workflow_locking.state.models import (
    LockToken,
    Record,
    TransitionAttempt,
    state_value,
)


logger = logging.getLogger(__name__)


class ValidationFailedError(Exception):
    """Raised when a record fails business validation before a write.

    Attributes:
        record_id: The record that failed, None for unsaved records.
        errors: Validation messages reported by the state oracle.
    """

    def __init__(self, record_id: Optional[int], errors: List[str]):
        self.record_id = record_id
        self.errors = list(errors)
        target = f"record {record_id}" if record_id is not None else "new record"
        super().__init__(f"Validation failed for {target}: {'; '.join(self.errors)}")


class ConcurrentModificationError(Exception):
    """Raised when the conditional state update affects no rows.

    Another writer changed the state column away from the expected prior
    state after this process read it. The guard never retries; callers must
    reload the record before trying again.

    Attributes:
        attempt: The transition that lost the race.
    """

    def __init__(self, attempt: TransitionAttempt):
        self.attempt = attempt
        super().__init__(
            f"Concurrent modification of record {attempt.record_id}: "
            f"expected state {attempt.expected_prior_state!r} "
            f"when moving to {attempt.new_state!r}"
        )


class RecordNotFoundError(Exception):
    """Raised when a stored record no longer exists.

    Attributes:
        record_id: The id that was not found.
    """

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


@runtime_checkable
class RecordStore(Protocol):
    """Protocol defining the persistence primitives the guard relies on.

    The PostgreSQL implementation is in repository.py. Any backend that can
    read a state column, run a single-row conditional update, report affected
    rows and hold a row lock can implement it.
    """

    async def get(self, record_id: int) -> Optional[Record]:
        """Get a record by id, or None if it does not exist."""
        ...

    async def read_state_column(self, record_id: int, column: str) -> Optional[str]:
        """Return the persisted value of a state column."""
        ...

    async def conditional_update(
        self,
        record_id: int,
        column: str,
        expected: Optional[str],
        new: str,
        lock: Optional[LockToken] = None,
    ) -> int:
        """Set ``column`` to ``new`` only where it currently equals ``expected``.

        Returns:
            The number of rows modified (0 or 1).
        """
        ...

    def lock_row(self, record_id: int) -> AsyncContextManager[LockToken]:
        """Hold an exclusive lock on one row for the duration of the block.

        Acquiring the lock must not reload the record's other fields.
        """
        ...

    async def save(self, record: Record, lock: Optional[LockToken] = None) -> Record:
        """Insert a new record or write every attribute of a stored one.

        Returns:
            The saved record, with ``id`` assigned on insert.
        """
        ...

    async def find_by_state(self, column: str, state: str) -> List[Record]:
        """List records whose state column equals ``state``."""
        ...


@runtime_checkable
class StateOracle(Protocol):
    """The workflow component that owns business state and validation."""

    def current_state(self, record: Record) -> Any:
        """Return the record's current (or initial) workflow state."""
        ...

    def validate(self, record: Record) -> List[str]:
        """Return validation messages; an empty list means valid."""
        ...


class StateTransitionGuard:
    """Compare-and-swap enforcement for workflow state transitions.

    The guard is not a state machine. The workflow computes the next state;
    the guard makes sure it is written only if nobody else moved the record
    first. All mutual exclusion is delegated to the store's row lock, so the
    protocol holds across processes sharing one database.

    Two concurrent transitions that both go from A to B are not reconciled:
    the second one fails with ConcurrentModificationError.

    Attributes:
        store: Persistence for records.
        oracle: Source of current state and validation.
        workflow_column: Name of the attribute holding the workflow state.

    Example:
        >>> guard = StateTransitionGuard(store, oracle, workflow_column="status")
        >>> record = await guard.create({"title": "Quarterly report"})
        >>> record = await guard.transition(record, "active")
    """

    def __init__(
        self,
        store: RecordStore,
        oracle: StateOracle,
        workflow_column: str = "workflow_state",
    ):
        if not workflow_column:
            raise ValueError("workflow_column cannot be empty")
        # An oracle reading another column would validate the wrong attribute.
        oracle_column = getattr(oracle, "workflow_column", None)
        if isinstance(oracle_column, str) and oracle_column != workflow_column:
            raise ValueError(
                f"oracle reads workflow column {oracle_column!r}, "
                f"guard writes {workflow_column!r}"
            )
        self.store = store
        self.oracle = oracle
        self.workflow_column = workflow_column

    def load_state(self, record: Record) -> Optional[str]:
        """Return the state column value held in memory."""
        return record.attributes.get(self.workflow_column)

    def ensure_initial_state(self, record: Record) -> Record:
        """Materialize the current state into an unset state column.

        Without this a record that was never transitioned keeps NULL in the
        store and is missed when querying by its initial state.

        Args:
            record: A record about to be persisted, or just loaded.

        Returns:
            The same record, with the state column set.
        """
        if record.attributes.get(self.workflow_column) is None:
            record.attributes[self.workflow_column] = state_value(
                self.oracle.current_state(record)
            )
        return record

    def build(self, attributes: Optional[Dict[str, Any]] = None) -> Record:
        """Construct an unsaved record with its initial state written."""
        record = Record(attributes=dict(attributes or {}))
        return self.ensure_initial_state(record)

    async def create(self, attributes: Optional[Dict[str, Any]] = None) -> Record:
        """Build, validate and persist a new record.

        Raises:
            ValidationFailedError: If the oracle rejects the record.
        """
        record = self.build(attributes)
        self._validate(record)
        saved = await self.store.save(record)

        logger.info(
            "Created workflow record",
            extra={
                "record_id": saved.id,
                "state": self.load_state(saved),
            },
        )

        return saved

    async def load(self, record_id: int) -> Optional[Record]:
        """Fetch a record, materializing a null state column in memory."""
        record = await self.store.get(record_id)
        if record is None:
            return None
        return self.ensure_initial_state(record)

    async def find_by_state(self, state: Any) -> List[Record]:
        """List records whose stored state column equals ``state``."""
        return await self.store.find_by_state(self.workflow_column, state_value(state))

    async def transition(self, record: Record, new_state: Any) -> Record:
        """Persist a new workflow state with optimistic locking.

        The record's in-memory state column is assigned before anything is
        written, so after a failure it may show the attempted state while the
        store still holds the old one. Reload before retrying.

        Args:
            record: The record to transition, stored or not yet stored.
            new_state: The next state computed by the workflow.

        Returns:
            The saved record.

        Raises:
            ValidationFailedError: If the record is invalid; nothing is written.
            ConcurrentModificationError: If the stored state no longer matches
                the value this record was read with.
            StoreUnavailableError: If the store fails or the row lock cannot
                be acquired in time.
        """
        column = self.workflow_column
        new_value = state_value(new_state)
        old_value = record.attributes.get(column)
        record.attributes[column] = new_value

        # Nothing can race the row before it exists.
        if record.is_new:
            self._validate(record)
            return await self.store.save(record)

        self._validate(record)

        attempt = TransitionAttempt(
            record_id=record.id,
            expected_prior_state=old_value,
            new_state=new_value,
        )

        async with self.store.lock_row(record.id) as lock:
            rows = await self.store.conditional_update(
                record.id, column, old_value, new_value, lock=lock
            )

            # TODO: allow two concurrent (a -> b) updates to both succeed when
            #       the workflow marks the transition as safe to merge.
            if rows == 0:
                logger.warning(
                    "Concurrent modification detected",
                    extra={
                        "record_id": record.id,
                        "expected_state": old_value,
                        "new_state": new_value,
                    },
                )
                raise ConcurrentModificationError(attempt)

            saved = await self.store.save(record, lock=lock)

        logger.info(
            "Transitioned workflow record",
            extra={
                "record_id": record.id,
                "from_state": old_value,
                "to_state": new_value,
            },
        )

        return saved

    def _validate(self, record: Record) -> None:
        errors = self.oracle.validate(record)
        if errors:
            logger.warning(
                "Workflow record failed validation",
                extra={"record_id": record.id, "errors": errors},
            )
            raise ValidationFailedError(record.id, errors)
