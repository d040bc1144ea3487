"""
blueprints/grading/routes.py - Grading Blueprint
JSON API for the grading sheet: pick a class/term, load the sheet,
save a draft, submit for approval.
Only teachers and school administrators (principal, edufam_admin) get in.
"""

from functools import wraps

from flask import Blueprint, current_app, g, jsonify, request
from flask_login import current_user, login_required

from grading.curriculum import Curriculum
from grading.errors import (
    ConfigurationError,
    EditNotAllowedError,
    LoadError,
    PersistenceError,
    ValidationError,
)
from grading.roster import load_grading_options
from grading.scope import Actor, Role, Scope, SheetScope
from grading.session import GradingSession

# Create blueprint
grading_bp = Blueprint('grading', __name__)


def current_role():
    return Role.for_user_role(current_user.role, current_app.config['ADMINISTRATOR_ROLES'])


# Decorator to check if current user may use the grading sheet
def grader_required(f):
    """
    Decorator to ensure only teachers and administrators can access the route
    """
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if current_role() is None:
            return jsonify({
                'success': False,
                'error': {
                    'title': 'Access Denied',
                    'message': 'Access denied. Teachers and school administrators only.',
                }
            }), 403
        g.grading_notices = []
        return f(*args, **kwargs)
    return decorated_function


def notify(title, message, category):
    g.grading_notices.append({'title': title, 'message': message, 'category': category})


def current_scope():
    return Scope(
        actor=Actor(user_id=current_user.id, role=current_role()),
        school_id=current_user.school_id
    )


def _to_int(value, field):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field.replace("_", " ")}.', field=field)


def _to_text(value, field):
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f'Invalid {field.replace("_", " ")}.', field=field)
    return value.strip()


def sheet_from(source):
    """Build the sheet identifiers from query args or a JSON body."""
    return SheetScope(
        class_id=_to_int(source.get('class_id'), 'class_id'),
        term=_to_text(source.get('term'), 'term'),
        exam_type=_to_text(source.get('exam_type'), 'exam_type')
    )


def open_session(sheet, read_only=False):
    session = GradingSession(current_scope(), sheet, notify=notify, read_only=read_only)
    return session.load()


# ----------------------------------------------------------------------
# Error mapping
# ----------------------------------------------------------------------

def _error_response(error, status_code, **extras):
    body = {'title': error.title, 'message': error.message}
    body.update(extras)
    return jsonify({
        'success': False,
        'error': body,
        'notices': getattr(g, 'grading_notices', [])
    }), status_code


@grading_bp.errorhandler(ConfigurationError)
def configuration_error(error):
    return _error_response(
        error, 409,
        remediation=error.remediation,
        valid_curricula=[c.value for c in Curriculum],
        school_id=current_user.school_id,
        **error.details
    )


@grading_bp.errorhandler(LoadError)
def load_error(error):
    return _error_response(error, 503, retryable=True)


@grading_bp.errorhandler(ValidationError)
def validation_error(error):
    return _error_response(error, 400, field=error.field)


@grading_bp.errorhandler(EditNotAllowedError)
def edit_not_allowed(error):
    return _error_response(error, 403, status=error.status, reason=error.message)


@grading_bp.errorhandler(PersistenceError)
def persistence_error(error):
    return _error_response(error, 500, unsaved_changes=True)


# ----------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------

@grading_bp.route('/options')
@grader_required
def options():
    """
    Classes and academic terms the current user can open a sheet for.
    """
    scope = current_scope()
    scope.require()
    return jsonify({'success': True, **load_grading_options(scope)})


@grading_bp.route('/sheet')
@grader_required
def sheet():
    """
    Load a grading sheet.
    Query: class_id, term, exam_type, optional read_only=1 for view-only.
    """
    read_only = request.args.get('read_only', '').strip().lower() in ('1', 'true', 'yes')
    session = open_session(sheet_from(request.args), read_only=read_only)
    return jsonify({
        'success': True,
        'notices': g.grading_notices,
        'sheet': session.to_payload()
    })


def _apply_edits(session, grades):
    if not isinstance(grades, dict):
        raise ValidationError('Grades must map student ids to subjects.', field='grades')
    for student_key, subjects in grades.items():
        if not isinstance(subjects, dict):
            raise ValidationError('Grades must map subject ids to values.', field='grades')
        student_id = _to_int(student_key, 'student_id')
        for subject_key, value in subjects.items():
            session.set_grade(student_id, _to_int(subject_key, 'subject_id'), value)


@grading_bp.route('/sheet/draft', methods=['POST'])
@grader_required
def save_draft():
    """
    API endpoint to save the sheet as a draft.
    Body: {class_id, term, exam_type, grades: {student_id: {subject_id: value}}}
    """
    data = request.get_json(silent=True) or {}
    session = open_session(sheet_from(data))
    _apply_edits(session, data.get('grades') or {})
    saved = session.save_as_draft()

    return jsonify({
        'success': True,
        'saved': saved,
        'notices': g.grading_notices,
        'sheet': session.to_payload()
    })


@grading_bp.route('/sheet/submit', methods=['POST'])
@grader_required
def submit():
    """
    API endpoint to submit the sheet.
    Teachers submit for principal approval; administrators submit directly.
    """
    data = request.get_json(silent=True) or {}
    session = open_session(sheet_from(data))
    _apply_edits(session, data.get('grades') or {})
    submitted = session.submit_for_approval()

    return jsonify({
        'success': True,
        'submitted': submitted,
        'notices': g.grading_notices,
        'sheet': session.to_payload()
    })
