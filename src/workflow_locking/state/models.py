"""Workflow record models.

This module defines the data models used by the transition guard:
- Record: A persisted entity with a designated workflow state column
- TransitionAttempt: The (record, expected prior state, new state) triple
  checked by one compare-and-swap
- LockToken: Handle for a row lock held for the duration of one transition
- WorkflowStates: The declared set of state names of a workflow

The models use Pydantic for validation, consistent with config.py.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def state_value(state: Any) -> str:
    """Return the string form of a workflow state.

    Enum members are stored by value, anything else by ``str()``.

    Example:
        >>> state_value("pending")
        'pending'
    """
    if isinstance(state, Enum):
        return str(state.value)
    return str(state)


class Record(BaseModel):
    """A persisted entity whose workflow state lives in one column.

    The state column is one of the entries in ``attributes``; its name is
    configured on the guard (``workflow_column``), not on the record.

    Attributes:
        id: Store-assigned identifier. None until the first save.
        attributes: Business attributes, including the state column.
    """

    id: Optional[int] = Field(
        default=None,
        ge=1,
        description="Store-assigned identifier, None until first persisted",
    )

    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Business attributes including the workflow state column",
    )

    @property
    def is_new(self) -> bool:
        """True if the record has never been persisted."""
        return self.id is None


class TransitionAttempt(BaseModel):
    """One compare-and-swap on a record's state column.

    Attributes:
        record_id: The record being transitioned.
        expected_prior_state: The state the caller last read.
        new_state: The state being written.
    """

    model_config = ConfigDict(frozen=True)

    record_id: int
    expected_prior_state: Optional[str] = None
    new_state: str


@dataclass(frozen=True)
class LockToken:
    """An exclusive row lock held by the current transition.

    The connection is opaque to the guard; stores use it to run the
    conditional update and the full save inside the lock's transaction.
    """

    record_id: int
    connection: Any = None


class WorkflowStates(BaseModel):
    """The declared states of a workflow.

    The initial state is ``initial`` when given, otherwise the first
    declared state.

    Attributes:
        states: Ordered, duplicate-free state names.
        initial: Optional explicit initial state; must be declared.

    Example:
        >>> workflow = WorkflowStates(states=["pending", "active", "archived"])
        >>> workflow.initial_state
        'pending'
    """

    model_config = ConfigDict(frozen=True)

    states: List[str] = Field(..., min_length=1)
    initial: Optional[str] = None

    @field_validator("states", mode="before")
    @classmethod
    def coerce_states(cls, v: Any) -> Any:
        """Accept enum members and other objects by their string form."""
        if isinstance(v, (list, tuple)):
            return [state_value(s) for s in v]
        if isinstance(v, type) and issubclass(v, Enum):
            return [state_value(s) for s in v]
        return v

    @field_validator("states")
    @classmethod
    def validate_states(cls, v: List[str]) -> List[str]:
        """Reject empty and duplicate state names."""
        for name in v:
            if not name or not name.strip():
                raise ValueError("state names cannot be empty")
        if len(set(v)) != len(v):
            raise ValueError("state names must be unique")
        return v

    @field_validator("initial", mode="before")
    @classmethod
    def coerce_initial(cls, v: Any) -> Any:
        return None if v is None else state_value(v)

    @model_validator(mode="after")
    def validate_initial(self) -> "WorkflowStates":
        if self.initial is not None and self.initial not in self.states:
            raise ValueError(f"initial state {self.initial!r} is not declared")
        return self

    @property
    def initial_state(self) -> str:
        return self.initial if self.initial is not None else self.states[0]

    def __contains__(self, state: Any) -> bool:
        return state_value(state) in self.states
