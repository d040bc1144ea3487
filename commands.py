"""
commands.py - Flask CLI commands

    flask create-principal EMAIL PASSWORD --school NAME
    flask seed-demo

Registered on the app in create_app().
"""

from datetime import date

import click
from flask.cli import with_appcontext

from extensions import db, bcrypt
from models import (
    AcademicTerm,
    Grade,
    School,
    SchoolClass,
    StrandAssessment,
    Student,
    Subject,
    SubjectTeacherAssignment,
    SystemSettings,
    User,
)


def _hash(password):
    return bcrypt.generate_password_hash(password).decode('utf-8')


def get_or_create_school(name):
    school = School.query.filter_by(name=name).first()
    if school is None:
        school = School(name=name)
        db.session.add(school)
        db.session.flush()
    return school


@click.command('create-principal')
@click.argument('email')
@click.argument('password')
@click.option('--school', 'school_name', required=True, help='School the principal administers.')
@click.option('--name', 'full_name', default=None, help='Display name.')
@with_appcontext
def create_principal_command(email, password, school_name, full_name):
    """Create a principal account (does nothing if the email is taken)."""
    email = email.strip().lower()

    existing = User.query.filter_by(email=email).first()
    if existing:
        click.echo(f'Account already exists: {existing.email} ({existing.role})')
        return

    school = get_or_create_school(school_name)
    principal = User(
        email=email,
        password=_hash(password),
        role='principal',
        full_name=full_name,
        school_id=school.id
    )
    db.session.add(principal)
    db.session.commit()

    click.echo(f'Principal account created: {principal.email} at {school.name}')
    click.echo('Change this password after first login!')


DEMO_CLASSES = [
    # (class name, curriculum, subjects)
    ('Grade 4 East', 'cbc', ['Mathematics', 'English', 'Science and Technology']),
    ('Year 10 Cambridge', 'igcse', ['Mathematics', 'Physics', 'Chemistry']),
    ('Form 2 North', 'standard', ['Mathematics', 'English', 'Biology']),
]

DEMO_STUDENTS = [
    'Amani Otieno', 'Baraka Mwangi', 'Chebet Kiprono', 'Dalia Njeri',
    'Elias Kamau', 'Faith Wanjiru',
]

DEMO_PASSWORD = 'password123'


@click.command('seed-demo')
@click.option('--school', 'school_name', default='Demo Academy', show_default=True)
@with_appcontext
def seed_demo_command(school_name):
    """Wipe grading data and seed a demo school with one class per curriculum."""
    click.echo('Clearing existing data...')
    StrandAssessment.query.delete()
    Grade.query.delete()
    SubjectTeacherAssignment.query.delete()
    Student.query.delete()
    Subject.query.delete()
    AcademicTerm.query.delete()
    SchoolClass.query.delete()
    User.query.delete()
    SystemSettings.query.delete()
    School.query.delete()
    db.session.commit()

    school = get_or_create_school(school_name)

    click.echo('Creating staff...')
    principal = User(email='principal@demo.school', password=_hash(DEMO_PASSWORD),
                     role='principal', full_name='Grace Achieng', school_id=school.id)
    teachers = [
        User(email='t.wekesa@demo.school', password=_hash(DEMO_PASSWORD),
             role='teacher', full_name='Tom Wekesa', school_id=school.id),
        User(email='m.auma@demo.school', password=_hash(DEMO_PASSWORD),
             role='teacher', full_name='Mary Auma', school_id=school.id),
    ]
    db.session.add(principal)
    db.session.add_all(teachers)
    db.session.flush()

    year = date.today().year
    terms = [
        AcademicTerm(school_id=school.id, name='Term 1', academic_year=str(year),
                     start_date=date(year, 1, 6), end_date=date(year, 4, 4)),
        AcademicTerm(school_id=school.id, name='Term 2', academic_year=str(year),
                     start_date=date(year, 4, 28), end_date=date(year, 8, 1)),
        AcademicTerm(school_id=school.id, name='Term 3', academic_year=str(year),
                     start_date=date(year, 8, 25), end_date=date(year, 10, 31)),
    ]
    db.session.add_all(terms)

    click.echo('Creating classes, students and subjects...')
    student_count = 0
    assignment_count = 0
    for index, (class_name, curriculum, subject_names) in enumerate(DEMO_CLASSES):
        school_class = SchoolClass(school_id=school.id, name=class_name, curriculum_type=curriculum)
        db.session.add(school_class)
        db.session.flush()

        for number, student_name in enumerate(DEMO_STUDENTS, start=1):
            db.session.add(Student(
                school_id=school.id,
                class_id=school_class.id,
                name=student_name,
                admission_number=f'ADM-{year}-{index + 1}{number:02d}',
                roll_number=str(number)
            ))
            student_count += 1

        for position, subject_name in enumerate(subject_names):
            subject = Subject(
                school_id=school.id,
                class_id=school_class.id,
                name=subject_name,
                code=f'{subject_name[:3].upper()}-{index + 1}'
            )
            db.session.add(subject)
            db.session.flush()

            # Alternate subjects between the two teachers
            db.session.add(SubjectTeacherAssignment(
                school_id=school.id,
                teacher_id=teachers[position % len(teachers)].id,
                subject_id=subject.id,
                class_id=school_class.id
            ))
            assignment_count += 1

    db.session.commit()

    click.echo('=' * 60)
    click.echo(f'Seeded {school.name}: {len(DEMO_CLASSES)} classes, {student_count} students, '
               f'{assignment_count} subject assignments, {len(terms)} terms')
    click.echo(f'Principal: {principal.email} / {DEMO_PASSWORD}')
    for teacher in teachers:
        click.echo(f'Teacher:   {teacher.email} / {DEMO_PASSWORD}')
    click.echo('=' * 60)


def register_commands(app):
    app.cli.add_command(create_principal_command)
    app.cli.add_command(seed_demo_command)
