"""Default state oracle over a declared set of workflow states."""

import logging
from typing import Callable, Iterable, List, Optional

from workflow_locking.state.models import Record, WorkflowStates


logger = logging.getLogger(__name__)

# Returns an error message, or None when the record is valid.
RecordValidator = Callable[[Record], Optional[str]]


class DeclaredStateOracle:
    """StateOracle backed by a WorkflowStates declaration.

    The current state is the stored column value when present, otherwise
    the workflow's initial state. Validation rejects undeclared states and
    runs any caller-supplied validators.

    Attributes:
        workflow: The declared states.
        workflow_column: Name of the attribute holding the state.
        validators: Extra business checks.
    """

    def __init__(
        self,
        workflow: WorkflowStates,
        workflow_column: str = "workflow_state",
        validators: Iterable[RecordValidator] = (),
    ):
        self.workflow = workflow
        self.workflow_column = workflow_column
        self.validators = list(validators)

    def current_state(self, record: Record) -> str:
        stored = record.attributes.get(self.workflow_column)
        if stored is None:
            return self.workflow.initial_state
        return stored

    def validate(self, record: Record) -> List[str]:
        errors: List[str] = []

        state = record.attributes.get(self.workflow_column)
        if state is not None and state not in self.workflow:
            errors.append(f"{self.workflow_column} {state!r} is not a declared state")

        for validator in self.validators:
            message = validator(record)
            if message:
                errors.append(message)

        if errors:
            logger.debug(
                "Record validation reported errors",
                extra={"record_id": record.id, "error_count": len(errors)},
            )

        return errors
