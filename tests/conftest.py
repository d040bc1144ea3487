from datetime import date
from types import SimpleNamespace

import pytest

from app import create_app
from extensions import db, bcrypt
from grading.scope import Actor, Role, Scope, SheetScope
from models import (
    AcademicTerm,
    School,
    SchoolClass,
    Student,
    Subject,
    SubjectTeacherAssignment,
    User,
)

PASSWORD = 'password123'
TERM = 'Term 1'
EXAM = 'End Term'


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def _user(email, role, school):
    user = User(
        email=email,
        password=bcrypt.generate_password_hash(PASSWORD).decode('utf-8'),
        role=role,
        full_name=email.split('@')[0],
        school_id=school.id
    )
    db.session.add(user)
    return user


@pytest.fixture
def data(app):
    """
    One school with a class per curriculum plus broken and empty classes.
    Returns plain ids so tests can use them in any app context.
    """
    with app.app_context():
        school = School(name='Test School')
        other_school = School(name='Other School')
        db.session.add_all([school, other_school])
        db.session.flush()

        principal = _user('principal@test.school', 'principal', school)
        teacher_a = _user('teacher.a@test.school', 'teacher', school)
        teacher_b = _user('teacher.b@test.school', 'teacher', school)
        parent = _user('parent@test.school', 'parent', school)

        classes = {
            'standard': SchoolClass(school_id=school.id, name='Form 2 North', curriculum_type='standard'),
            'igcse': SchoolClass(school_id=school.id, name='Year 10', curriculum_type='igcse'),
            'cbc': SchoolClass(school_id=school.id, name='Grade 4', curriculum_type='cbc'),
            'unset': SchoolClass(school_id=school.id, name='Unset Class', curriculum_type=None),
            'invalid': SchoolClass(school_id=school.id, name='Odd Class', curriculum_type='montessori'),
            'empty': SchoolClass(school_id=school.id, name='Empty Class', curriculum_type='standard'),
            'foreign': SchoolClass(school_id=other_school.id, name='Elsewhere', curriculum_type='standard'),
        }
        db.session.add_all(classes.values())
        db.session.flush()

        students = {}
        for key in ('standard', 'igcse', 'cbc'):
            students[key] = [
                Student(school_id=school.id, class_id=classes[key].id, name=name, admission_number=f'{key}-{i}')
                for i, name in enumerate(['Zawadi Kim', 'Amani Otieno'])
            ]
            db.session.add_all(students[key])
        inactive = Student(school_id=school.id, class_id=classes['standard'].id,
                           name='Left School', is_active=False)
        db.session.add(inactive)

        subjects = {
            'math': Subject(school_id=school.id, class_id=classes['standard'].id, name='Mathematics', code='MAT'),
            'english': Subject(school_id=school.id, class_id=classes['standard'].id, name='English', code='ENG'),
            'biology': Subject(school_id=school.id, class_id=classes['standard'].id, name='Biology', code='BIO'),
            'physics': Subject(school_id=school.id, class_id=classes['igcse'].id, name='Physics', code='PHY'),
            'cbc_math': Subject(school_id=school.id, class_id=classes['cbc'].id, name='Mathematics', code='MAT4'),
        }
        db.session.add_all(subjects.values())
        db.session.flush()

        assignments = [
            ('math', teacher_a, 'standard'),
            ('english', teacher_b, 'standard'),
            ('physics', teacher_a, 'igcse'),
            ('cbc_math', teacher_a, 'cbc'),
        ]
        for subject_key, teacher, class_key in assignments:
            db.session.add(SubjectTeacherAssignment(
                school_id=school.id,
                teacher_id=teacher.id,
                subject_id=subjects[subject_key].id,
                class_id=classes[class_key].id
            ))

        db.session.add_all([
            AcademicTerm(school_id=school.id, name='Term 1', academic_year='2026',
                         start_date=date(2026, 1, 5), end_date=date(2026, 4, 3)),
            AcademicTerm(school_id=school.id, name='Term 2', academic_year='2026',
                         start_date=date(2026, 5, 4), end_date=date(2026, 8, 7)),
        ])
        db.session.commit()

        return SimpleNamespace(
            school_id=school.id,
            other_school_id=other_school.id,
            principal_id=principal.id,
            teacher_a_id=teacher_a.id,
            teacher_b_id=teacher_b.id,
            parent_id=parent.id,
            class_ids={key: c.id for key, c in classes.items()},
            student_ids={key: [s.id for s in group] for key, group in students.items()},
            inactive_student_id=inactive.id,
            subject_ids={key: s.id for key, s in subjects.items()},
        )


@pytest.fixture
def ctx(app, data):
    with app.app_context():
        yield app


@pytest.fixture
def scopes(data):
    def scope(user_id, role):
        return Scope(actor=Actor(user_id=user_id, role=role), school_id=data.school_id)

    return SimpleNamespace(
        principal=scope(data.principal_id, Role.ADMINISTRATOR),
        teacher_a=scope(data.teacher_a_id, Role.TEACHER),
        teacher_b=scope(data.teacher_b_id, Role.TEACHER),
    )


@pytest.fixture
def sheets(data):
    return SimpleNamespace(**{
        key: SheetScope(class_id=class_id, term=TERM, exam_type=EXAM)
        for key, class_id in data.class_ids.items()
    })


def login(client, email, password=PASSWORD):
    return client.post('/auth/login', json={'email': email, 'password': password})
