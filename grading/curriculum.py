"""
grading/curriculum.py - Curriculum classification and grade derivation

A class is graded under exactly one of three schemes:

- CBC (competency-based): each subject is broken into strands, every strand
  gets one of four performance levels, EM < AP < PR < EX.
- IGCSE (certificate): coursework and exam components combine into a score,
  reported as an IGCSE letter (A* ... U).
- Standard: a numeric score out of 100 with a letter from configured boundaries.

There is no default: a class with a missing or unknown curriculum type blocks
the grading sheet until an administrator fixes it.
"""

import enum
import logging
import math

from grading.errors import ConfigurationError, ValidationError
from grading.retry import load_with_retry
from models import SchoolClass

logger = logging.getLogger(__name__)


class Curriculum(enum.Enum):
    COMPETENCY = 'cbc'
    CERTIFICATE = 'igcse'
    STANDARD = 'standard'


CURRICULUM_INFO = {
    Curriculum.COMPETENCY: {
        'display_name': 'CBC',
        'full_name': 'Competency-Based Curriculum',
        'color': 'green',
        'note': 'Use performance levels (EM, AP, PR, EX) to assess competency strands',
        'record_noun': 'assessments',
    },
    Curriculum.CERTIFICATE: {
        'display_name': 'IGCSE',
        'full_name': 'International General Certificate of Secondary Education',
        'color': 'blue',
        'note': 'Use IGCSE letter grades (A*, A, B, C, D, E, F, G, U)',
        'record_noun': 'grades',
    },
    Curriculum.STANDARD: {
        'display_name': 'Standard',
        'full_name': 'Traditional numeric grading (0-100)',
        'color': 'gray',
        'note': 'Use numeric scores (0-100) with automatic grade calculation',
        'record_noun': 'grades',
    },
}

# Ordered lowest to highest
PERFORMANCE_LEVELS = [
    {'value': 'EM', 'label': 'Emerging', 'description': 'Below expectation'},
    {'value': 'AP', 'label': 'Approaching', 'description': 'Approaching expectation'},
    {'value': 'PR', 'label': 'Proficient', 'description': 'Meeting expectation'},
    {'value': 'EX', 'label': 'Exceeding', 'description': 'Exceeding expectation'},
]
PERFORMANCE_LEVEL_ORDER = [level['value'] for level in PERFORMANCE_LEVELS]


def validate_curriculum_type(value):
    """
    Turn a stored curriculum string into a Curriculum.

    Raises ConfigurationError for empty or unrecognised values; never defaults.
    """
    if value is None or not str(value).strip():
        raise ConfigurationError('No curriculum type set for this class.', curriculum_type=value)

    normalized = str(value).strip().lower()
    for curriculum in Curriculum:
        if curriculum.value == normalized:
            return curriculum

    raise ConfigurationError(
        f'Invalid curriculum type "{value}" for this class.',
        curriculum_type=value,
    )


def classify(school_id, class_id):
    """
    Determine which grading scheme applies to a class.

    Raises ConfigurationError if the class does not exist in this school or
    its curriculum type is missing or invalid.
    """
    school_class = load_with_retry(
        lambda: SchoolClass.query.filter_by(id=class_id, school_id=school_id).first(),
        'class information',
    )
    if school_class is None:
        logger.warning('Class %s not found in school %s', class_id, school_id)
        raise ConfigurationError('Class not found in this school.', class_id=class_id)

    try:
        return validate_curriculum_type(school_class.curriculum_type)
    except ConfigurationError as e:
        logger.warning(
            'Class %s (%s) has unusable curriculum type %r',
            school_class.id, school_class.name, school_class.curriculum_type,
        )
        e.details.update(class_id=school_class.id, class_name=school_class.name)
        raise


def get_curriculum_info(curriculum):
    """Labels for a curriculum; accepts a Curriculum or its stored string."""
    if not isinstance(curriculum, Curriculum):
        curriculum = validate_curriculum_type(curriculum)
    return dict(CURRICULUM_INFO[curriculum], value=curriculum.value)


def validate_performance_level(value):
    normalized = value.strip().upper() if isinstance(value, str) else None
    if normalized not in PERFORMANCE_LEVEL_ORDER:
        raise ValidationError(
            f'Invalid performance level "{value}". Use one of: {", ".join(PERFORMANCE_LEVEL_ORDER)}.',
            field='performance_level',
        )
    return normalized


def _check_score(value, max_score, field):
    label = field.replace('_', ' ').capitalize()
    if isinstance(value, bool):
        raise ValidationError(f'{label} must be a number.', field=field)
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} must be a number.', field=field)
    if not math.isfinite(score):
        raise ValidationError(f'{label} must be a number.', field=field)
    if score < 0:
        raise ValidationError(f'{label} cannot be negative.', field=field)
    if score > max_score:
        raise ValidationError(
            f'{label} ({score:g}) cannot exceed max score ({max_score:g}).',
            field=field,
        )
    return score


def letter_for(percentage, boundaries):
    """First boundary (highest first) whose minimum the percentage reaches."""
    for minimum, letter in boundaries:
        if percentage >= minimum:
            return letter
    return boundaries[-1][1]


def standard_result(score, max_score, boundaries):
    """
    Derive percentage and letter grade for a standard-curriculum score.

    Returns dict(score, percentage, letter_grade).
    """
    score = _check_score(score, max_score, 'score')
    percentage = round(score / max_score * 100, 2)
    return {
        'score': score,
        'percentage': percentage,
        'letter_grade': letter_for(percentage, boundaries),
    }


def certificate_result(coursework_score, exam_score, coursework_weight, exam_weight, boundaries):
    """
    Combine IGCSE coursework and exam marks (each out of 100).

    With both components present the score is the weighted sum; a single
    component stands on its own until the other one is entered.
    """
    if coursework_score is not None:
        coursework_score = _check_score(coursework_score, 100, 'coursework_score')
    if exam_score is not None:
        exam_score = _check_score(exam_score, 100, 'exam_score')

    components = [
        (mark, weight)
        for mark, weight in ((coursework_score, coursework_weight), (exam_score, exam_weight))
        if mark is not None
    ]
    if not components:
        raise ValidationError('Enter a coursework or exam score.', field='score')

    total_weight = sum(weight for _, weight in components)
    score = round(sum(mark * weight for mark, weight in components) / total_weight, 2)
    return {
        'score': score,
        'percentage': score,
        'letter_grade': letter_for(score, boundaries),
        'coursework_score': coursework_score,
        'exam_score': exam_score,
    }
