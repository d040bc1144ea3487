import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from config import Config
from extensions import db
from grading.errors import PersistenceError, ValidationError
from grading.session import grading_settings
from grading.store import (
    CERTIFICATE_SHAPE,
    COMPETENCY_SHAPE,
    STANDARD_SHAPE,
    BatchWriter,
    GradeBatch,
    load_existing,
)
from models import Grade, StrandAssessment


@pytest.fixture
def settings(ctx):
    return grading_settings()


def test_standard_save_is_idempotent(ctx, data, scopes, sheets, settings):
    student_id = data.student_ids['standard'][0]
    batch = GradeBatch()
    batch.get_or_create(student_id, data.subject_ids['math']).score = 85

    writer = BatchWriter(STANDARD_SHAPE, settings)
    assert writer.save(batch, 'draft', scopes.teacher_a, sheets.standard) == 1
    assert writer.save(batch, 'draft', scopes.teacher_a, sheets.standard) == 1

    grades = Grade.query.filter_by(student_id=student_id).all()
    assert len(grades) == 1
    grade = grades[0]
    assert grade.percentage == 85.0
    assert grade.letter_grade == 'A'
    assert grade.max_score == Config.STANDARD_MAX_SCORE
    assert grade.curriculum_type == 'standard'
    assert grade.submitted_by == data.teacher_a_id
    assert grade.submitted_at is not None


def test_cells_without_values_are_skipped(ctx, data, scopes, sheets, settings):
    batch = GradeBatch()
    batch.get_or_create(data.student_ids['standard'][0], data.subject_ids['math'])
    batch.get_or_create(data.student_ids['standard'][1], data.subject_ids['math']).score = 40

    assert BatchWriter(STANDARD_SHAPE, settings).save(batch, 'draft', scopes.teacher_a, sheets.standard) == 1
    assert Grade.query.count() == 1


def test_certificate_rows_carry_components(ctx, data, scopes, sheets, settings):
    batch = GradeBatch()
    cell = batch.get_or_create(data.student_ids['igcse'][0], data.subject_ids['physics'])
    cell.coursework_score = 80
    cell.exam_score = 90

    BatchWriter(CERTIFICATE_SHAPE, settings).save(batch, 'submitted', scopes.teacher_a, sheets.igcse)

    grade = Grade.query.one()
    assert grade.coursework_score == 80
    assert grade.exam_score == 90
    assert grade.score == 87.0
    assert grade.letter_grade == 'A'
    assert grade.curriculum_type == 'igcse'
    assert grade.status == 'submitted'


def test_competency_cell_fans_out_one_row_per_strand(ctx, data, scopes, sheets, settings):
    student_id = data.student_ids['cbc'][0]
    batch = GradeBatch()
    cell = batch.get_or_create(student_id, data.subject_ids['cbc_math'])
    cell.strand_scores = {'Numbers': 'PR', 'Geometry': 'ap'}

    writer = BatchWriter(COMPETENCY_SHAPE, settings)
    assert writer.save(batch, 'draft', scopes.teacher_a, sheets.cbc) == 2
    writer.save(batch, 'draft', scopes.teacher_a, sheets.cbc)

    rows = StrandAssessment.query.order_by(StrandAssessment.strand_name).all()
    assert [(r.strand_name, r.performance_level) for r in rows] == [('Geometry', 'AP'), ('Numbers', 'PR')]
    assert all(r.teacher_id == data.teacher_a_id for r in rows)
    assert all(r.assessment_type == 'end term' for r in rows)


def test_invalid_cell_fails_before_anything_is_written(ctx, data, scopes, sheets, settings):
    batch = GradeBatch()
    batch.get_or_create(data.student_ids['standard'][0], data.subject_ids['math']).score = 50
    batch.get_or_create(data.student_ids['standard'][1], data.subject_ids['math']).score = 150

    with pytest.raises(ValidationError):
        BatchWriter(STANDARD_SHAPE, settings).save(batch, 'draft', scopes.teacher_a, sheets.standard)
    assert Grade.query.count() == 0


def test_missing_identifier_is_rejected(ctx, data, scopes, sheets, settings):
    from grading.scope import SheetScope

    batch = GradeBatch()
    batch.get_or_create(data.student_ids['standard'][0], data.subject_ids['math']).score = 50
    sheet = SheetScope(class_id=data.class_ids['standard'], term='', exam_type='End Term')

    with pytest.raises(ValidationError) as excinfo:
        BatchWriter(STANDARD_SHAPE, settings).save(batch, 'draft', scopes.teacher_a, sheet)
    assert excinfo.value.field == 'term'


def test_only_draft_and_submitted_are_writable(ctx, scopes, sheets, settings):
    with pytest.raises(ValueError):
        BatchWriter(STANDARD_SHAPE, settings).save(GradeBatch(), 'approved', scopes.principal, sheets.standard)


def test_write_failure_rolls_back_and_raises(ctx, data, scopes, sheets, settings, monkeypatch):
    batch = GradeBatch()
    batch.get_or_create(data.student_ids['standard'][0], data.subject_ids['math']).score = 50

    def fail_commit():
        raise OperationalError('COMMIT', {}, Exception('database is locked'))

    monkeypatch.setattr(db.session, 'commit', fail_commit)
    with pytest.raises(PersistenceError):
        BatchWriter(STANDARD_SHAPE, settings).save(batch, 'draft', scopes.teacher_a, sheets.standard)
    monkeypatch.undo()

    assert Grade.query.count() == 0


def test_teacher_loads_only_own_records(ctx, data, scopes, sheets, settings):
    math = data.subject_ids['math']
    english = data.subject_ids['english']
    student_id = data.student_ids['standard'][0]

    batch_a = GradeBatch()
    batch_a.get_or_create(student_id, math).score = 70
    BatchWriter(STANDARD_SHAPE, settings).save(batch_a, 'draft', scopes.teacher_a, sheets.standard)
    batch_b = GradeBatch()
    batch_b.get_or_create(student_id, english).score = 60
    BatchWriter(STANDARD_SHAPE, settings).save(batch_b, 'draft', scopes.teacher_b, sheets.standard)

    own = load_existing(STANDARD_SHAPE, scopes.teacher_a, sheets.standard)
    assert len(own.records) == 1
    assert own.batch.get(student_id, math).score == 70
    assert own.batch.get(student_id, english) is None

    everything = load_existing(STANDARD_SHAPE, scopes.principal, sheets.standard)
    assert len(everything.records) == 2
    assert everything.batch.get(student_id, english).submitted_by == data.teacher_b_id


def test_numeric_variants_do_not_mix(ctx, data, scopes, sheets, settings):
    student_id = data.student_ids['standard'][0]
    batch = GradeBatch()
    batch.get_or_create(student_id, data.subject_ids['math']).score = 70
    BatchWriter(STANDARD_SHAPE, settings).save(batch, 'draft', scopes.teacher_a, sheets.standard)

    assert load_existing(CERTIFICATE_SHAPE, scopes.principal, sheets.standard).records == []


def test_unknown_status_is_refused_by_the_database(ctx, data, sheets):
    db.session.add(Grade(
        school_id=data.school_id,
        student_id=data.student_ids['standard'][0],
        subject_id=data.subject_ids['math'],
        class_id=sheets.standard.class_id,
        term=sheets.standard.term,
        exam_type=sheets.standard.exam_type,
        status='archived',
        submitted_by=data.teacher_a_id
    ))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()
