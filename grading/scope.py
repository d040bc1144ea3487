"""
grading/scope.py - Who is grading, and what they are grading

Every resolver and store call takes a Scope (actor + school) and, where it
touches a specific sheet, a SheetScope (class + term + exam type). Nothing in
the grading package reads the logged-in user from request state.
"""

import enum
from dataclasses import dataclass

from grading.errors import ValidationError


class Role(enum.Enum):
    TEACHER = 'teacher'
    ADMINISTRATOR = 'administrator'

    @classmethod
    def for_user_role(cls, user_role, administrator_roles=('principal', 'edufam_admin')):
        """
        Map a stored user role onto the grading role.

        Returns None for roles with no access to grading (parents, finance, HR...).
        """
        if not user_role:
            return None
        normalized = user_role.strip().lower()
        if normalized == 'teacher':
            return cls.TEACHER
        if normalized in administrator_roles:
            return cls.ADMINISTRATOR
        return None


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role

    @property
    def is_teacher(self):
        return self.role is Role.TEACHER

    @property
    def is_administrator(self):
        return self.role is Role.ADMINISTRATOR


@dataclass(frozen=True)
class Scope:
    actor: Actor
    school_id: int

    @property
    def actor_key(self):
        """Cache partition: teachers see their own slice, administrators see everything."""
        return self.actor.user_id if self.actor.is_teacher else 'all'

    def require(self, sheet=None):
        """Raise ValidationError naming the first missing identifier."""
        required = [
            ('school_id', self.school_id),
            ('user_id', self.actor.user_id if self.actor else None),
        ]
        if sheet is not None:
            required += [
                ('class_id', sheet.class_id),
                ('term', sheet.term),
                ('exam_type', sheet.exam_type),
            ]
        for field, value in required:
            if value is None or value == '':
                raise ValidationError(
                    f'Missing required {field.replace("_", " ")}.',
                    field=field,
                )


@dataclass(frozen=True)
class SheetScope:
    class_id: int
    term: str
    exam_type: str

    @property
    def assessment_type(self):
        """CBC rows store the exam type lower-cased."""
        return self.exam_type.lower()
