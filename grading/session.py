"""
grading/session.py - Draft/submit workflow for one grading sheet

A GradingSession is opened for (actor, school, class, term, exam type):

    load()  ->  set_grade() ...  ->  save_as_draft() / submit_for_approval()

load() classifies the class first; a configuration error stops everything
before any roster or grade query runs. Edits stay in memory until a save
flushes them; a failed save keeps them and leaves has_unsaved_changes set.
"""

import dataclasses
import logging
from datetime import datetime

from flask import current_app

from grading.cache import GradingCache
from grading.curriculum import (
    PERFORMANCE_LEVELS,
    Curriculum,
    classify,
    get_curriculum_info,
    validate_performance_level,
)
from grading.errors import (
    ConfigurationError,
    EditNotAllowedError,
    LoadError,
    PersistenceError,
    ValidationError,
)
from grading.permissions import GateState, blocked_reason, can_edit, cell_locked
from grading.roster import load_roster, load_subjects, roster_notices
from grading.store import (
    BatchWriter,
    GradeBatch,
    GradeCell,
    fold_records,
    load_existing,
    shape_for,
)

logger = logging.getLogger(__name__)

SETTING_KEYS = (
    'STANDARD_MAX_SCORE',
    'STANDARD_GRADE_BOUNDARIES',
    'IGCSE_COURSEWORK_WEIGHT',
    'IGCSE_EXAM_WEIGHT',
    'IGCSE_GRADE_BOUNDARIES',
)


def grading_settings():
    """Grading rules from the active Flask config."""
    return {key: current_app.config[key] for key in SETTING_KEYS}


def _ignore_notice(title, message, category):
    pass


def _parse_optional_number(value):
    if value is None or value == '':
        return None
    return value


class GradingSession:

    def __init__(self, scope, sheet, settings=None, cache=None, notify=None, read_only=False):
        self.scope = scope
        self.sheet = sheet
        self.settings = settings if settings is not None else grading_settings()
        self.cache = cache if cache is not None else GradingCache()
        self.notify = notify or _ignore_notice
        self.read_only = read_only

        self.curriculum = None
        self.configuration_error = None
        self.load_error = None
        self.students = []
        self.subjects = []
        self.batch = GradeBatch()
        self.records = []
        self.data_loaded = False
        self.has_unsaved_changes = False
        self.last_saved = None
        # (student_id, subject_id) of cells changed since the last load or save
        self.edited = set()

    @property
    def shape(self):
        return shape_for(self.curriculum)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self):
        """
        Classify the class, then load roster, subjects and existing grades.

        On ConfigurationError nothing else is queried. On LoadError the data
        from the previous successful load stays in place. Both re-raise.
        """
        self.scope.require(self.sheet)
        self.cache.bind(self.scope, self.sheet)

        try:
            curriculum = classify(self.scope.school_id, self.sheet.class_id)
        except ConfigurationError as e:
            self.configuration_error = e
            self.curriculum = None
            self.data_loaded = False
            self.notify(e.title, e.message, 'danger')
            raise
        self.configuration_error = None

        try:
            cached = self.cache.get_class_data(self.scope, self.sheet.class_id)
            if cached is not None:
                students, subjects = cached
            else:
                students = load_roster(self.scope, self.sheet.class_id)
                subjects = load_subjects(self.scope, self.sheet.class_id)
                self.cache.put_class_data(self.scope, self.sheet.class_id, students, subjects)

            shape = shape_for(curriculum)
            loaded = self.cache.get_grades(self.scope, self.sheet)
            if loaded is None:
                loaded = load_existing(shape, self.scope, self.sheet)
                self.cache.put_grades(self.scope, self.sheet, loaded)
        except LoadError as e:
            self.load_error = e
            self.notify('Error', 'Failed to load grading data. Please try again.', 'danger')
            raise

        self.curriculum = curriculum
        self.students = students
        self.subjects = subjects
        self.records = loaded.records
        self.batch = fold_records(shape, loaded.records)
        self.load_error = None
        self.data_loaded = True
        self.has_unsaved_changes = False
        self.edited = set()

        notices = roster_notices(self.scope.actor, students, subjects)
        for notice in notices:
            self.notify(*notice)
        if not notices:
            info = get_curriculum_info(curriculum)
            self.notify(
                'Grading Sheet Ready',
                f'Ready to enter {info["display_name"]} {info["record_noun"]} for '
                f'{len(students)} students and {len(subjects)} subjects.',
                'info',
            )
        return self

    # ------------------------------------------------------------------
    # Permission gate
    # ------------------------------------------------------------------

    @property
    def gate_state(self):
        if not self.records:
            return GateState()
        return GateState.from_records(self.records, self.shape.author_column)

    def can_edit_grades(self):
        if self.read_only or not self.data_loaded or self.configuration_error:
            return False
        return can_edit(self.scope.actor, self.gate_state)

    def blocked_reason(self):
        if self.configuration_error:
            return self.configuration_error.message
        if not self.data_loaded:
            return 'Grading data has not been loaded'
        if self.read_only:
            return 'This grading sheet is view-only'
        return blocked_reason(self.scope.actor, self.gate_state)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def _require_loaded(self):
        if self.configuration_error:
            raise self.configuration_error
        if not self.data_loaded:
            raise ValidationError('Load the grading sheet before editing it.', field='sheet')

    def set_grade(self, student_id, subject_id, value):
        """
        Apply one cell edit (the sheet's onGradeChange).

        `value` is a dict; recognised keys depend on the curriculum:
        standard `score`; IGCSE `coursework_score`, `exam_score`; CBC
        `strand_scores` ({strand: level}, merged into the existing strands,
        an empty level removes the strand). `teacher_remarks` applies to all.
        The cell is only replaced once the whole value validates.
        """
        self._require_loaded()
        if student_id not in {s.id for s in self.students}:
            raise ValidationError('Student is not on this grading sheet.', field='student_id')
        if subject_id not in {s.id for s in self.subjects}:
            raise ValidationError('Subject is not on this grading sheet.', field='subject_id')
        if not isinstance(value, dict):
            raise ValidationError('Grade value must be an object.', field='value')

        current = self.batch.get(student_id, subject_id)
        if current is None:
            cell = GradeCell()
        else:
            cell = dataclasses.replace(
                current,
                strand_scores=dict(current.strand_scores),
                strand_authors=dict(current.strand_authors),
            )

        if self.curriculum is Curriculum.STANDARD:
            if 'score' in value:
                cell.score = _parse_optional_number(value['score'])
        elif self.curriculum is Curriculum.CERTIFICATE:
            if 'coursework_score' in value:
                cell.coursework_score = _parse_optional_number(value['coursework_score'])
            if 'exam_score' in value:
                cell.exam_score = _parse_optional_number(value['exam_score'])
        else:
            strand_scores = value.get('strand_scores') or {}
            if not isinstance(strand_scores, dict):
                raise ValidationError('Strand scores must map strand names to levels.',
                                      field='strand_scores')
            for strand_name, level in strand_scores.items():
                if not isinstance(strand_name, str) or not strand_name.strip():
                    raise ValidationError('Strand name is required.', field='strand_name')
                strand_name = strand_name.strip()
                if level in (None, ''):
                    cell.strand_scores.pop(strand_name, None)
                    cell.strand_authors.pop(strand_name, None)
                else:
                    cell.strand_scores[strand_name] = validate_performance_level(level)

        if 'teacher_remarks' in value:
            remarks = value['teacher_remarks']
            if remarks is not None and not isinstance(remarks, str):
                raise ValidationError('Teacher remarks must be text.', field='teacher_remarks')
            cell.remarks = (remarks or '').strip()

        if self.shape.has_value(cell):
            self.shape.derive(cell, self.settings)
        else:
            cell.percentage = None
            cell.letter_grade = None
            if self.curriculum is not Curriculum.STANDARD:
                cell.score = None

        existing = self.batch.get_or_create(student_id, subject_id)
        for f in dataclasses.fields(cell):
            setattr(existing, f.name, getattr(cell, f.name))
        self.edited.add((student_id, subject_id))
        self.has_unsaved_changes = True
        return existing

    def has_grades_to_submit(self):
        if not self.data_loaded:
            return False
        return any(self.shape.has_value(cell) for _, _, cell in self.batch.items())

    # ------------------------------------------------------------------
    # Draft / submit
    # ------------------------------------------------------------------

    def _write(self, status):
        self.scope.require(self.sheet)
        self._require_loaded()
        if not self.can_edit_grades():
            raise EditNotAllowedError(self.blocked_reason(), status=self.gate_state.status)
        if not self.has_grades_to_submit():
            raise ValidationError('There are no grades to save.', field='grades')

        batch = self._cells_to_write()
        if not len(batch):
            raise ValidationError('There are no editable grades to save.', field='grades')

        count = BatchWriter(self.shape, self.settings).save(batch, status, self.scope, self.sheet)

        self.edited = set()
        self.has_unsaved_changes = False
        self.last_saved = datetime.utcnow()
        self.cache.invalidate_grades(self.scope, self.sheet)
        self._refresh_records()
        return count

    def _cells_to_write(self):
        """
        Cells a save may touch: edits made in this session plus untouched drafts.

        Loaded cells the actor may not edit are left alone; editing one is an
        error. Untouched submitted, approved or rejected cells keep their status.
        """
        actor = self.scope.actor
        batch = GradeBatch()
        for student_id, subject_id, cell in self.batch.items():
            if not self.shape.has_value(cell):
                continue
            edited = (student_id, subject_id) in self.edited
            if cell_locked(actor, cell):
                if edited:
                    raise EditNotAllowedError(
                        blocked_reason(actor, GateState.from_cell(cell)), status=cell.status
                    )
                continue
            if not edited and cell.status not in (None, 'draft'):
                continue
            batch.put(student_id, subject_id, cell)
        return batch

    def _refresh_records(self):
        """Re-read persisted records so the gate sees the status just written."""
        try:
            loaded = load_existing(self.shape, self.scope, self.sheet)
        except LoadError:
            logger.warning('Could not refresh grades for class %s after saving', self.sheet.class_id)
            return
        self.cache.put_grades(self.scope, self.sheet, loaded)

        refreshed = fold_records(self.shape, loaded.records)
        # Cells that had nothing to save (e.g. remarks only) stay in memory
        for student_id, subject_id, cell in self.batch.items():
            if refreshed.get(student_id, subject_id) is None:
                replacement = refreshed.get_or_create(student_id, subject_id)
                for f in dataclasses.fields(cell):
                    setattr(replacement, f.name, getattr(cell, f.name))
        self.records = loaded.records
        self.batch = refreshed

    def save_as_draft(self):
        """Upsert the writable cells as `draft`. Returns the number of rows written."""
        try:
            count = self._write('draft')
        except PersistenceError:
            self.has_unsaved_changes = True
            self.notify('Save Failed', 'Failed to save draft. Please try again.', 'danger')
            raise

        noun = get_curriculum_info(self.curriculum)['record_noun']
        self.notify('Draft Saved', f'{count} {noun} saved as draft successfully.', 'success')
        return count

    def submit_for_approval(self, on_success=None):
        """
        Upsert the writable cells as `submitted`, then call `on_success()`.

        An administrator re-submitting keeps the status at `submitted`;
        approval happens outside this workflow.
        """
        try:
            count = self._write('submitted')
        except PersistenceError:
            self.has_unsaved_changes = True
            self.notify('Submission Failed', 'Failed to submit grades. Please try again.', 'danger')
            raise

        noun = get_curriculum_info(self.curriculum)['record_noun']
        self.notify(
            'Grades Submitted Successfully',
            f'{count} {noun} submitted for principal approval.',
            'success',
        )
        if on_success is not None:
            on_success()
        return count

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def to_payload(self):
        """Everything a sheet renderer needs: data, read-only flags and labels."""
        actor = self.scope.actor
        state = self.gate_state if self.data_loaded else GateState()
        editable = self.can_edit_grades()
        locked_cells = [
            {'student_id': student_id, 'subject_id': subject_id}
            for student_id, subject_id, cell in self.batch.items()
            if not editable or cell_locked(actor, cell)
        ]
        return {
            'scope': {
                'school_id': self.scope.school_id,
                'class_id': self.sheet.class_id,
                'term': self.sheet.term,
                'exam_type': self.sheet.exam_type,
            },
            'curriculum': get_curriculum_info(self.curriculum) if self.curriculum else None,
            'performance_levels': PERFORMANCE_LEVELS if self.curriculum is Curriculum.COMPETENCY else [],
            'students': [s.to_dict() for s in self.students],
            'subjects': [s.to_dict() for s in self.subjects],
            'grades': self.batch.to_dict(),
            'status': state.status,
            'submitted_by': state.submitted_by,
            'can_edit': editable,
            'read_only': not editable,
            'view_only': self.read_only,
            'blocked_reason': None if editable else self.blocked_reason(),
            'locked_cells': locked_cells,
            'has_grades_to_submit': self.has_grades_to_submit(),
            'has_unsaved_changes': self.has_unsaved_changes,
            'last_saved': self.last_saved.isoformat() if self.last_saved else None,
            'submit_label': 'Submit' if actor.is_administrator else 'Submit for Approval',
        }
