"""
Job State Machine
=================

Defines the valid states and transitions for batch-processing jobs.
"""

from enum import Enum


class JobStatus(str, Enum):
    """Enumeration of batch job states."""

    QUEUED = "queued"
    ANALYZING = "analyzing"
    PROCESSING_FILE = "processing_file"
    COMPLETED = "completed"
    ERROR = "error"
    WARNING = "warning"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.WARNING})


class InvalidTransitionError(Exception):
    """Exception raised when an invalid state transition is attempted."""

    def __init__(self, current_status: JobStatus, new_status: JobStatus):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(f"Invalid transition from {current_status.value} to {new_status.value}")


class TransitionManager:
    """Manages valid state transitions for jobs."""

    # key = current state, value = set of valid next states
    _VALID_TRANSITIONS = {
        JobStatus.QUEUED: {JobStatus.ANALYZING, JobStatus.ERROR},
        JobStatus.ANALYZING: {
            JobStatus.PROCESSING_FILE,
            JobStatus.COMPLETED,  # every file was rejected before analysis, nothing to do
            JobStatus.WARNING,
            JobStatus.ERROR,
        },
        JobStatus.PROCESSING_FILE: {
            JobStatus.COMPLETED,
            JobStatus.WARNING,
            JobStatus.ERROR,
        },
        JobStatus.COMPLETED: set(),
        JobStatus.WARNING: set(),
        JobStatus.ERROR: set(),
    }

    @classmethod
    def validate_transition(cls, current_status: JobStatus, new_status: JobStatus) -> None:
        """
        Validate if a transition is allowed.

        Args:
            current_status: Current state of the job
            new_status: Target state

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        # Repeated processing_file updates are the normal progress path
        if current_status == new_status and not current_status.is_terminal:
            return

        allowed_next_states = cls._VALID_TRANSITIONS.get(current_status, set())
        if new_status not in allowed_next_states:
            raise InvalidTransitionError(current_status, new_status)
