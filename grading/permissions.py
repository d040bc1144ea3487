"""
grading/permissions.py - Who may edit an already-persisted batch

    none ──> draft ──> submitted ──> approved ──> released
                           └──> rejected

Only draft and submitted are written by the grading sheet; approval,
rejection and release happen elsewhere and are only read back here.

    status      teacher (author)   teacher (other)   administrator
    none        yes                yes               yes
    draft       yes                no                yes
    submitted   no                 no                yes
    approved    no                 no                yes
    rejected    no                 no                yes
    released    no                 no                no

The gate is recomputed from the latest loaded records on every call.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from grading.scope import Role

STATUS_MESSAGES = {
    'submitted': 'Grades already submitted - only principals can edit',
    'approved': 'Grades approved - only principals can edit',
    'rejected': 'Grades rejected - only principals can edit',
    'released': 'Grades released - cannot be edited',
}
OTHER_TEACHER_MESSAGE = 'These grades were created by another teacher'


@dataclass(frozen=True)
class GateState:
    status: Optional[str] = None
    submitted_by: Optional[int] = None

    @property
    def is_empty(self):
        return not self.status and self.submitted_by is None

    @classmethod
    def from_records(cls, records, author_column='submitted_by'):
        """State of the most recently updated record; empty when there are none."""
        if not records:
            return cls()
        latest = max(records, key=lambda r: (r.updated_at or datetime.min, r.id))
        return cls(status=latest.status, submitted_by=getattr(latest, author_column))

    @classmethod
    def from_cell(cls, cell):
        return cls(status=cell.status, submitted_by=cell.submitted_by)


def can_edit(actor, state):
    if state.is_empty:
        return actor.role in (Role.TEACHER, Role.ADMINISTRATOR)

    if state.status == 'released':
        return False

    if actor.role is Role.TEACHER:
        return state.status == 'draft' and state.submitted_by == actor.user_id

    if actor.role is Role.ADMINISTRATOR:
        return True

    return False


def blocked_reason(actor, state):
    """Why `can_edit` refused, or None when editing is allowed."""
    if can_edit(actor, state):
        return None
    if (actor.role is Role.TEACHER and state.submitted_by is not None
            and state.submitted_by != actor.user_id):
        return OTHER_TEACHER_MESSAGE
    return STATUS_MESSAGES.get(state.status, 'You do not have permission to edit these grades')


def cell_locked(actor, cell):
    """Per-cell read-only flag for cells loaded from the database."""
    if cell is None or (cell.status is None and cell.submitted_by is None):
        return False
    return not can_edit(actor, GateState.from_cell(cell))
