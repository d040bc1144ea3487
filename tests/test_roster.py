from grading.roster import (
    load_grading_options,
    load_roster,
    load_subjects,
    roster_notices,
)


def test_roster_lists_active_students_alphabetically(ctx, data, scopes):
    students = load_roster(scopes.principal, data.class_ids['standard'])
    assert [s.name for s in students] == ['Amani Otieno', 'Zawadi Kim']
    assert data.inactive_student_id not in [s.id for s in students]


def test_teacher_sees_only_assigned_subjects(ctx, data, scopes):
    subjects = load_subjects(scopes.teacher_a, data.class_ids['standard'])
    assert [s.id for s in subjects] == [data.subject_ids['math']]


def test_administrator_sees_every_subject_of_the_class(ctx, data, scopes):
    subjects = load_subjects(scopes.principal, data.class_ids['standard'])
    assert [s.name for s in subjects] == ['Biology', 'English', 'Mathematics']


def test_teacher_subjects_are_subset_of_administrator_subjects(ctx, data, scopes):
    for class_key in ('standard', 'igcse', 'cbc'):
        class_id = data.class_ids[class_key]
        admin_ids = {s.id for s in load_subjects(scopes.principal, class_id)}
        for teacher_scope in (scopes.teacher_a, scopes.teacher_b):
            teacher_ids = {s.id for s in load_subjects(teacher_scope, class_id)}
            assert teacher_ids <= admin_ids


def test_roster_notices(ctx, data, scopes):
    assert roster_notices(scopes.teacher_a.actor, [object()], [object()]) == []

    (title, message, category), = roster_notices(scopes.teacher_a.actor, [], [])
    assert title == 'No Students Found'
    assert category == 'warning'

    (title, message, _), = roster_notices(scopes.teacher_b.actor, [object()], [])
    assert title == 'No Subjects Found'
    assert 'not assigned to teach' in message

    (_, message, _), = roster_notices(scopes.principal.actor, [object()], [])
    assert message == 'No subjects are assigned to this class. Please assign subjects first.'


def test_grading_options_for_teacher_and_administrator(ctx, data, scopes):
    teacher_options = load_grading_options(scopes.teacher_b)
    assert [c['id'] for c in teacher_options['classes']] == [data.class_ids['standard']]

    admin_options = load_grading_options(scopes.principal)
    admin_class_ids = {c['id'] for c in admin_options['classes']}
    assert data.class_ids['unset'] in admin_class_ids
    assert data.class_ids['foreign'] not in admin_class_ids

    assert [t['name'] for t in admin_options['terms']] == ['Term 2', 'Term 1']
    assert admin_options['current_term'] in ('Term 1', 'Term 2', 'Term 3')


def test_current_term_override_from_system_settings(ctx, scopes):
    from config import Config
    from models import SystemSettings

    SystemSettings.set_setting('current_term', 'Term 3', updated_by='principal')
    SystemSettings.set_setting('current_academic_year', '2025')
    options = load_grading_options(scopes.principal)
    assert options['current_term'] == 'Term 3'
    assert options['current_academic_year'] == '2025'

    assert SystemSettings.delete_setting('current_term')
    assert not SystemSettings.delete_setting('current_term')
    assert load_grading_options(scopes.principal)['current_term'] == Config._auto_calculate_term()
