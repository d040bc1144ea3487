"""
grading/roster.py - Students and subjects on a grading sheet

Teachers see only the subjects they are assigned to teach in the class;
administrators see every subject configured for it. Empty rosters and
subject lists are warnings, not failures.
"""

import logging

from config import Config
from grading.retry import load_with_retry
from models import AcademicTerm, SchoolClass, Student, Subject, SubjectTeacherAssignment

logger = logging.getLogger(__name__)


def _dedupe_by_id(subjects):
    seen = set()
    unique = []
    for subject in subjects:
        if subject is None or subject.id in seen or not subject.name:
            continue
        seen.add(subject.id)
        unique.append(subject)
    return sorted(unique, key=lambda s: (s.name.lower(), s.id))


def load_roster(scope, class_id):
    """Active students of the class, alphabetical by name."""
    students = load_with_retry(
        lambda: Student.query.filter_by(
            school_id=scope.school_id,
            class_id=class_id,
            is_active=True
        ).order_by(Student.name, Student.id).all(),
        'students',
    )
    students = [s for s in students if s.name]
    logger.info('Loaded %d students for class %s', len(students), class_id)
    return students


def _assigned_subjects(scope, class_id, teacher_id=None):
    query = SubjectTeacherAssignment.query.filter_by(
        school_id=scope.school_id,
        class_id=class_id,
        is_active=True
    )
    if teacher_id is not None:
        query = query.filter_by(teacher_id=teacher_id)
    return [
        assignment.subject for assignment in query.all()
        if assignment.subject is not None and assignment.subject.is_active
    ]


def load_subjects(scope, class_id):
    """
    Subjects visible to the actor for this class, deduplicated by id.

    Teacher: subjects from their own active assignments for the class.
    Administrator: subjects configured for the class plus any subject with an
    active assignment in it, so the teacher's list is always a subset.
    """
    actor = scope.actor

    def fetch():
        if actor.is_teacher:
            return _assigned_subjects(scope, class_id, teacher_id=actor.user_id)
        configured = Subject.query.filter_by(
            school_id=scope.school_id,
            class_id=class_id,
            is_active=True
        ).all()
        return configured + _assigned_subjects(scope, class_id)

    subjects = _dedupe_by_id(load_with_retry(fetch, 'subjects'))
    logger.info(
        'Loaded %d subjects for class %s (%s %s)',
        len(subjects), class_id, actor.role.value, actor.user_id,
    )
    return subjects


def roster_notices(actor, students, subjects):
    """
    User-visible warnings for an empty roster or subject list.

    Returns a list of (title, message, category) tuples; empty when the
    sheet has something to grade.
    """
    if not students:
        return [(
            'No Students Found',
            'No active students found in this class. Please add students to the class first.',
            'warning',
        )]
    if not subjects:
        if actor.is_teacher:
            message = ('You are not assigned to teach any subjects for this class. '
                       'Please contact your administrator for subject assignment.')
        else:
            message = 'No subjects are assigned to this class. Please assign subjects first.'
        return [('No Subjects Found', message, 'warning')]
    return []


def load_grading_options(scope):
    """
    Classes and terms the actor can pick from before opening a sheet.

    Teachers only get classes they hold an active subject assignment in.
    """
    actor = scope.actor

    def fetch_classes():
        query = SchoolClass.query.filter_by(school_id=scope.school_id)
        if actor.is_teacher:
            class_ids = [
                row.class_id for row in SubjectTeacherAssignment.query.filter_by(
                    school_id=scope.school_id,
                    teacher_id=actor.user_id,
                    is_active=True
                ).with_entities(SubjectTeacherAssignment.class_id).distinct().all()
            ]
            if not class_ids:
                return []
            query = query.filter(SchoolClass.id.in_(class_ids))
        return query.order_by(SchoolClass.name).all()

    classes = load_with_retry(fetch_classes, 'classes')
    terms = load_with_retry(
        lambda: AcademicTerm.query.filter_by(
            school_id=scope.school_id
        ).order_by(AcademicTerm.start_date.desc(), AcademicTerm.id.desc()).all(),
        'academic terms',
    )

    return {
        'classes': [
            {'id': c.id, 'name': c.name, 'curriculum_type': c.curriculum_type}
            for c in classes
        ],
        'terms': [
            {
                'id': t.id,
                'name': t.name,
                'academic_year': t.academic_year,
                'start_date': t.start_date.isoformat() if t.start_date else None,
                'end_date': t.end_date.isoformat() if t.end_date else None,
            }
            for t in terms
        ],
        'current_term': Config.get_current_term(),
        'current_academic_year': Config.get_current_academic_year(),
    }
