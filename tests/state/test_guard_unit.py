"""Unit tests for StateTransitionGuard.

Verifies the order of store calls for each transition path by mocking the
record store and the state oracle.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from workflow_locking.state import (
    ConcurrentModificationError,
    LockToken,
    Record,
    StateTransitionGuard,
    StoreUnavailableError,
    ValidationFailedError,
)


def run_async(coro):
    return asyncio.run(coro)


class _FakeLock:
    """Async context manager standing in for RecordStore.lock_row()."""

    def __init__(self, token: LockToken, events: List[str]) -> None:
        self.token = token
        self.events = events

    async def __aenter__(self) -> LockToken:
        self.events.append("lock")
        return self.token

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.events.append("unlock")
        return False


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def _make_store(rows: int = 1, events: Optional[List[str]] = None) -> MagicMock:
    events = events if events is not None else []
    store = MagicMock()
    store.events = events
    store.lock_row = MagicMock(
        side_effect=lambda record_id: _FakeLock(LockToken(record_id=record_id), events)
    )

    async def conditional_update(*args, **kwargs):
        events.append("conditional_update")
        return rows

    async def save(record, lock=None):
        events.append("save")
        if record.id is None:
            return record.model_copy(update={"id": 99})
        return record

    store.conditional_update = AsyncMock(side_effect=conditional_update)
    store.save = AsyncMock(side_effect=save)
    store.get = AsyncMock(return_value=None)
    store.find_by_state = AsyncMock(return_value=[])
    return store


def _make_oracle(errors: Optional[List[str]] = None, state: str = "pending") -> MagicMock:
    oracle = MagicMock()
    oracle.current_state = MagicMock(return_value=state)
    oracle.validate = MagicMock(return_value=errors or [])
    oracle.workflow_column = "status"
    return oracle


def _stored_record(state: str = "pending") -> Record:
    return Record(id=7, attributes={"status": state, "title": "Invoice"})


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestTransitionStoredRecord:
    def test_happy_path_call_order(self) -> None:
        store = _make_store()
        guard = StateTransitionGuard(store, _make_oracle(), workflow_column="status")
        record = _stored_record()

        result = run_async(guard.transition(record, "active"))

        assert result.attributes["status"] == "active"
        assert store.events == ["lock", "conditional_update", "save", "unlock"]
        store.lock_row.assert_called_once_with(7)
        store.conditional_update.assert_awaited_once_with(
            7, "status", "pending", "active", lock=LockToken(record_id=7)
        )
        store.save.assert_awaited_once_with(record, lock=LockToken(record_id=7))

    def test_zero_rows_raises_and_skips_save(self) -> None:
        store = _make_store(rows=0)
        guard = StateTransitionGuard(store, _make_oracle(), workflow_column="status")

        with pytest.raises(ConcurrentModificationError) as exc_info:
            run_async(guard.transition(_stored_record(), "active"))

        attempt = exc_info.value.attempt
        assert attempt.record_id == 7
        assert attempt.expected_prior_state == "pending"
        assert attempt.new_state == "active"
        store.save.assert_not_awaited()
        assert store.events == ["lock", "conditional_update", "unlock"]

    def test_validation_failure_touches_nothing(self) -> None:
        store = _make_store()
        oracle = _make_oracle(errors=["amount must be positive"])
        guard = StateTransitionGuard(store, oracle, workflow_column="status")
        record = _stored_record()

        with pytest.raises(ValidationFailedError) as exc_info:
            run_async(guard.transition(record, "active"))

        assert exc_info.value.record_id == 7
        assert exc_info.value.errors == ["amount must be positive"]
        store.lock_row.assert_not_called()
        store.conditional_update.assert_not_awaited()
        store.save.assert_not_awaited()
        # the in-memory record already holds the attempted state
        assert record.attributes["status"] == "active"

    def test_store_error_propagates_unchanged_and_releases_lock(self) -> None:
        store = _make_store()
        error = StoreUnavailableError("connection reset")
        store.save = AsyncMock(side_effect=error)
        guard = StateTransitionGuard(store, _make_oracle(), workflow_column="status")

        with pytest.raises(StoreUnavailableError) as exc_info:
            run_async(guard.transition(_stored_record(), "active"))

        assert exc_info.value is error
        assert store.events[-1] == "unlock"

    def test_enum_state_is_written_by_value(self) -> None:
        from enum import Enum

        class Status(str, Enum):
            ACTIVE = "active"

        store = _make_store()
        guard = StateTransitionGuard(store, _make_oracle(), workflow_column="status")

        result = run_async(guard.transition(_stored_record(), Status.ACTIVE))

        assert result.attributes["status"] == "active"
        args = store.conditional_update.await_args.args
        assert args[3] == "active"


class TestTransitionNewRecord:
    def test_new_record_is_saved_without_lock(self) -> None:
        store = _make_store()
        guard = StateTransitionGuard(store, _make_oracle(), workflow_column="status")
        record = Record(attributes={"title": "Fresh"})

        result = run_async(guard.transition(record, "active"))

        assert result.id == 99
        assert result.attributes["status"] == "active"
        store.lock_row.assert_not_called()
        store.conditional_update.assert_not_awaited()
        store.save.assert_awaited_once_with(record)

    def test_invalid_new_record_is_not_saved(self) -> None:
        store = _make_store()
        guard = StateTransitionGuard(
            store, _make_oracle(errors=["title required"]), workflow_column="status"
        )

        with pytest.raises(ValidationFailedError) as exc_info:
            run_async(guard.transition(Record(), "active"))

        assert exc_info.value.record_id is None
        assert "new record" in str(exc_info.value)
        store.save.assert_not_awaited()


class TestInitialState:
    def test_unset_column_is_filled_from_oracle(self) -> None:
        oracle = _make_oracle(state="draft")
        guard = StateTransitionGuard(_make_store(), oracle, workflow_column="status")

        record = guard.ensure_initial_state(Record(attributes={"title": "x"}))

        assert record.attributes["status"] == "draft"

    def test_set_column_is_left_alone(self) -> None:
        oracle = _make_oracle(state="draft")
        guard = StateTransitionGuard(_make_store(), oracle, workflow_column="status")

        record = guard.ensure_initial_state(Record(attributes={"status": "active"}))

        assert record.attributes["status"] == "active"
        oracle.current_state.assert_not_called()

    def test_create_validates_then_saves(self) -> None:
        store = _make_store()
        guard = StateTransitionGuard(store, _make_oracle(), workflow_column="status")

        created = run_async(guard.create({"title": "Report"}))

        assert created.id == 99
        saved = store.save.await_args.args[0]
        assert saved.attributes == {"title": "Report", "status": "pending"}

    def test_load_missing_record_returns_none(self) -> None:
        guard = StateTransitionGuard(_make_store(), _make_oracle(), workflow_column="status")
        assert run_async(guard.load(404)) is None

    def test_empty_column_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            StateTransitionGuard(_make_store(), _make_oracle(), workflow_column="")

    def test_oracle_on_another_column_rejected(self) -> None:
        from workflow_locking.state import DeclaredStateOracle, WorkflowStates

        oracle = DeclaredStateOracle(WorkflowStates(states=["pending", "active"]))

        with pytest.raises(ValueError) as exc_info:
            StateTransitionGuard(_make_store(), oracle, workflow_column="status")

        assert "'workflow_state'" in str(exc_info.value)
        assert "'status'" in str(exc_info.value)

    def test_oracle_on_same_column_accepted(self) -> None:
        from workflow_locking.state import DeclaredStateOracle, WorkflowStates

        oracle = DeclaredStateOracle(WorkflowStates(states=["pending", "active"]), "status")

        guard = StateTransitionGuard(_make_store(), oracle, workflow_column="status")

        assert guard.oracle is oracle


class TestFindByState:
    def test_delegates_with_configured_column(self) -> None:
        store = _make_store()
        guard = StateTransitionGuard(store, _make_oracle(), workflow_column="status")

        run_async(guard.find_by_state("active"))

        store.find_by_state.assert_awaited_once_with("status", "active")
