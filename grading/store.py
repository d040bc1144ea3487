"""
grading/store.py - Reading and writing grade records

The three curricula persist differently:

- standard: one `grade` row per (student, subject)
- IGCSE: one `grade` row per (student, subject) with coursework/exam components
- CBC: one `strand_assessment` row per (student, subject, strand)

A RecordShape describes one of those layouts (which model, which columns form
the natural key, how a cell turns into rows and back). BatchWriter is written
once and upserts whatever rows the shape produces.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from grading.curriculum import (
    Curriculum,
    certificate_result,
    standard_result,
    validate_performance_level,
)
from grading.errors import PersistenceError
from grading.retry import load_with_retry
from models import GRADE_STATUSES, Grade, StrandAssessment

logger = logging.getLogger(__name__)

WRITABLE_STATUSES = GRADE_STATUSES[:2]  # draft, submitted


@dataclass
class GradeCell:
    """
    One (student, subject) cell of the sheet.

    `status`, `submitted_by` and `updated_at` describe the persisted record the
    cell was loaded from; they stay None for cells first created in memory.
    """
    score: Optional[float] = None
    percentage: Optional[float] = None
    letter_grade: Optional[str] = None
    coursework_score: Optional[float] = None
    exam_score: Optional[float] = None
    strand_scores: dict = field(default_factory=dict)
    # strand -> teacher_id of the record it was loaded from
    strand_authors: dict = field(default_factory=dict)
    remarks: str = ''
    status: Optional[str] = None
    submitted_by: Optional[int] = None
    updated_at: Optional[datetime] = None

    def to_dict(self):
        return {
            'score': self.score,
            'percentage': self.percentage,
            'letter_grade': self.letter_grade,
            'coursework_score': self.coursework_score,
            'exam_score': self.exam_score,
            'strand_scores': dict(self.strand_scores),
            'teacher_remarks': self.remarks,
            'status': self.status,
            'submitted_by': self.submitted_by,
        }


class GradeBatch:
    """In-memory student -> subject -> GradeCell mapping staged for a save."""

    def __init__(self):
        self._cells = {}

    def get(self, student_id, subject_id):
        return self._cells.get(student_id, {}).get(subject_id)

    def get_or_create(self, student_id, subject_id):
        cell = self.get(student_id, subject_id)
        if cell is None:
            cell = GradeCell()
            self._cells.setdefault(student_id, {})[subject_id] = cell
        return cell

    def put(self, student_id, subject_id, cell):
        self._cells.setdefault(student_id, {})[subject_id] = cell

    def items(self):
        for student_id, subjects in self._cells.items():
            for subject_id, cell in subjects.items():
                yield student_id, subject_id, cell

    def __len__(self):
        return sum(len(subjects) for subjects in self._cells.values())

    def to_dict(self):
        return {
            str(student_id): {str(subject_id): cell.to_dict() for subject_id, cell in subjects.items()}
            for student_id, subjects in self._cells.items()
        }


@dataclass
class WriteContext:
    scope: object
    sheet: object
    status: str
    now: datetime
    settings: dict

    def author_for(self, cell):
        # Administrators editing a teacher's record keep the teacher as author
        return cell.submitted_by or self.scope.actor.user_id


@dataclass
class LoadedGrades:
    batch: GradeBatch
    records: list


class RecordShape:
    """Curriculum-specific layout of grade rows."""

    curriculum = None
    model = None
    natural_key = ()
    author_column = 'submitted_by'

    def has_value(self, cell):
        raise NotImplementedError

    def derive(self, cell, settings):
        """Fill computed fields on the cell (percentage, letter...)."""

    def rows(self, student_id, subject_id, cell, context):
        raise NotImplementedError

    def scope_query(self, scope, sheet):
        raise NotImplementedError

    def fold(self, record, cell):
        raise NotImplementedError


class _NumericShape(RecordShape):
    """Shared plumbing for the `grade` table (standard and IGCSE)."""

    model = Grade
    natural_key = ('school_id', 'student_id', 'subject_id', 'class_id', 'term', 'exam_type', 'submitted_by')

    def scope_query(self, scope, sheet):
        query = Grade.query.filter_by(
            school_id=scope.school_id,
            class_id=sheet.class_id,
            term=sheet.term,
            exam_type=sheet.exam_type,
            curriculum_type=self.curriculum.value
        )
        if scope.actor.is_teacher:
            query = query.filter_by(submitted_by=scope.actor.user_id)
        return query

    def _base_row(self, student_id, subject_id, cell, context):
        return {
            'school_id': context.scope.school_id,
            'student_id': student_id,
            'subject_id': subject_id,
            'class_id': context.sheet.class_id,
            'term': context.sheet.term,
            'exam_type': context.sheet.exam_type,
            'submitted_by': context.author_for(cell),
            'curriculum_type': self.curriculum.value,
            'status': context.status,
            'submitted_at': context.now,
            'comments': cell.remarks or None,
        }


class StandardShape(_NumericShape):
    curriculum = Curriculum.STANDARD

    def has_value(self, cell):
        return cell.score is not None

    def derive(self, cell, settings):
        result = standard_result(
            cell.score, settings['STANDARD_MAX_SCORE'], settings['STANDARD_GRADE_BOUNDARIES']
        )
        cell.score = result['score']
        cell.percentage = result['percentage']
        cell.letter_grade = result['letter_grade']

    def rows(self, student_id, subject_id, cell, context):
        self.derive(cell, context.settings)
        row = self._base_row(student_id, subject_id, cell, context)
        row.update(
            score=cell.score,
            max_score=context.settings['STANDARD_MAX_SCORE'],
            percentage=cell.percentage,
            letter_grade=cell.letter_grade,
        )
        return [row]

    def fold(self, record, cell):
        cell.score = record.score
        cell.percentage = record.percentage
        cell.letter_grade = record.letter_grade
        cell.remarks = record.comments or ''


class CertificateShape(_NumericShape):
    curriculum = Curriculum.CERTIFICATE

    def has_value(self, cell):
        return cell.coursework_score is not None or cell.exam_score is not None

    def derive(self, cell, settings):
        result = certificate_result(
            cell.coursework_score,
            cell.exam_score,
            settings['IGCSE_COURSEWORK_WEIGHT'],
            settings['IGCSE_EXAM_WEIGHT'],
            settings['IGCSE_GRADE_BOUNDARIES'],
        )
        cell.coursework_score = result['coursework_score']
        cell.exam_score = result['exam_score']
        cell.score = result['score']
        cell.percentage = result['percentage']
        cell.letter_grade = result['letter_grade']

    def rows(self, student_id, subject_id, cell, context):
        self.derive(cell, context.settings)
        row = self._base_row(student_id, subject_id, cell, context)
        row.update(
            score=cell.score,
            max_score=100,
            percentage=cell.percentage,
            letter_grade=cell.letter_grade,
            coursework_score=cell.coursework_score,
            exam_score=cell.exam_score,
        )
        return [row]

    def fold(self, record, cell):
        cell.score = record.score
        cell.percentage = record.percentage
        cell.letter_grade = record.letter_grade
        cell.coursework_score = record.coursework_score
        cell.exam_score = record.exam_score
        cell.remarks = record.comments or ''


class CompetencyShape(RecordShape):
    curriculum = Curriculum.COMPETENCY
    model = StrandAssessment
    natural_key = (
        'school_id', 'student_id', 'subject_id', 'class_id', 'term', 'assessment_type',
        'teacher_id', 'strand_name',
    )
    author_column = 'teacher_id'

    def has_value(self, cell):
        return bool(cell.strand_scores)

    def rows(self, student_id, subject_id, cell, context):
        rows = []
        for strand_name, level in cell.strand_scores.items():
            rows.append({
                'school_id': context.scope.school_id,
                'student_id': student_id,
                'subject_id': subject_id,
                'class_id': context.sheet.class_id,
                'term': context.sheet.term,
                'assessment_type': context.sheet.assessment_type,
                'teacher_id': cell.strand_authors.get(strand_name) or context.author_for(cell),
                'strand_name': strand_name,
                'performance_level': validate_performance_level(level),
                'teacher_remarks': cell.remarks or '',
                'assessment_date': context.now.date(),
                'status': context.status,
                'submitted_at': context.now,
            })
        return rows

    def scope_query(self, scope, sheet):
        query = StrandAssessment.query.filter_by(
            school_id=scope.school_id,
            class_id=sheet.class_id,
            term=sheet.term,
            assessment_type=sheet.assessment_type
        )
        if scope.actor.is_teacher:
            query = query.filter_by(teacher_id=scope.actor.user_id)
        return query

    def fold(self, record, cell):
        cell.strand_scores[record.strand_name] = record.performance_level
        cell.strand_authors[record.strand_name] = record.teacher_id
        cell.remarks = record.teacher_remarks or ''


STANDARD_SHAPE = StandardShape()
CERTIFICATE_SHAPE = CertificateShape()
COMPETENCY_SHAPE = CompetencyShape()

_SHAPES = {
    Curriculum.STANDARD: STANDARD_SHAPE,
    Curriculum.CERTIFICATE: CERTIFICATE_SHAPE,
    Curriculum.COMPETENCY: COMPETENCY_SHAPE,
}


def shape_for(curriculum):
    return _SHAPES[curriculum]


def load_existing(shape, scope, sheet):
    """
    Load persisted records for the sheet into a fresh batch.

    Teachers get only the records they authored; administrators get every
    record in scope. Records are folded oldest first, so each cell reports
    the status and author of its most recently updated record.
    """
    records = load_with_retry(lambda: shape.scope_query(scope, sheet).all(), 'existing grades')
    records.sort(key=lambda r: (r.updated_at or datetime.min, r.id))

    logger.info(
        'Loaded %d %s records for class %s, %s %s',
        len(records), shape.curriculum.value, sheet.class_id, sheet.term, sheet.exam_type,
    )
    return LoadedGrades(batch=fold_records(shape, records), records=records)


def fold_records(shape, records):
    """Build a fresh batch from records already sorted oldest first."""
    batch = GradeBatch()
    for record in records:
        cell = batch.get_or_create(record.student_id, record.subject_id)
        shape.fold(record, cell)
        cell.status = record.status
        cell.submitted_by = getattr(record, shape.author_column)
        cell.updated_at = record.updated_at
    return batch


class BatchWriter:
    """
    Upserts a batch through a RecordShape.

    Rows are matched on the shape's natural key and updated in place, so
    saving the same batch twice leaves one row per identity. Cells without a
    usable value are skipped. The whole batch is one transaction.
    """

    def __init__(self, shape, settings):
        self.shape = shape
        self.settings = settings

    def save(self, batch, status, scope, sheet):
        if status not in WRITABLE_STATUSES:
            raise ValueError(f'Cannot write grades with status {status!r}')
        scope.require(sheet)

        context = WriteContext(scope=scope, sheet=sheet, status=status,
                               now=datetime.utcnow(), settings=self.settings)
        # Build every row first so an invalid cell fails before anything is written
        rows = []
        for student_id, subject_id, cell in batch.items():
            if self.shape.has_value(cell):
                rows.extend(self.shape.rows(student_id, subject_id, cell, context))

        if not rows:
            return 0

        try:
            for row in rows:
                self._upsert(row)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception(
                'Writing %d %s rows (%s) for class %s failed',
                len(rows), self.shape.curriculum.value, status, sheet.class_id,
            )
            raise PersistenceError(
                'Failed to save grades. Please try again.', cause=str(e)
            ) from e

        logger.info(
            'Saved %d %s rows as %s for class %s by user %s',
            len(rows), self.shape.curriculum.value, status, sheet.class_id, scope.actor.user_id,
        )
        return len(rows)

    def _upsert(self, row):
        model = self.shape.model
        key = {column: row[column] for column in self.shape.natural_key}
        record = model.query.filter_by(**key).first()
        if record is None:
            record = model(**key)
            db.session.add(record)
        for column, value in row.items():
            setattr(record, column, value)
        return record
