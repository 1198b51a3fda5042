"""Typed failures raised by the coach assignment services.

Routes translate these into HTTP responses; none of them leaves partial
state behind.
"""

from typing import Optional


class CoachAssignmentError(Exception):
    """Base exception for coach assignment errors"""

    pass


class ValidationError(CoachAssignmentError):
    """Assignment data is malformed, incomplete, or references an unknown scope"""

    pass


class ConflictError(CoachAssignmentError):
    """An existing assignment for the same scope overlaps the requested range"""

    def __init__(self, existing_assignment_id: int, message: Optional[str] = None):
        self.existing_assignment_id = existing_assignment_id
        super().__init__(
            message or f"Overlaps existing coach assignment {existing_assignment_id} for the same scope"
        )


class NotFoundError(CoachAssignmentError):
    """Referenced assignment (or enrollment) does not exist"""

    pass
