import pytest

from grading.errors import ValidationError
from grading.scope import Actor, Role, Scope, SheetScope


@pytest.mark.parametrize('user_role, expected', [
    ('teacher', Role.TEACHER),
    ('principal', Role.ADMINISTRATOR),
    ('EduFam_Admin', Role.ADMINISTRATOR),
    ('parent', None),
    ('finance_officer', None),
    (None, None),
])
def test_role_mapping(user_role, expected):
    assert Role.for_user_role(user_role) is expected


@pytest.mark.parametrize('sheet, field', [
    (SheetScope(class_id=None, term='Term 1', exam_type='Midterm'), 'class_id'),
    (SheetScope(class_id=3, term='', exam_type='Midterm'), 'term'),
    (SheetScope(class_id=3, term='Term 1', exam_type=''), 'exam_type'),
])
def test_require_names_missing_field(sheet, field):
    scope = Scope(actor=Actor(user_id=1, role=Role.TEACHER), school_id=1)
    with pytest.raises(ValidationError) as excinfo:
        scope.require(sheet)
    assert excinfo.value.field == field


def test_require_checks_school_first():
    scope = Scope(actor=Actor(user_id=None, role=Role.TEACHER), school_id=None)
    with pytest.raises(ValidationError) as excinfo:
        scope.require()
    assert excinfo.value.field == 'school_id'
    assert excinfo.value.message == 'Missing required school id.'


def test_assessment_type_is_lower_cased():
    assert SheetScope(class_id=1, term='Term 1', exam_type='End Term').assessment_type == 'end term'
