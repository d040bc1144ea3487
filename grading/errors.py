"""
grading/errors.py - Grading workflow exceptions
Every failure is scoped to the grading panel and recoverable by retry or
corrected input; none of these should take the application down.
"""


class GradingError(Exception):
    """Base class. `title` and `message` are shown to the user as-is."""

    title = 'Grading Error'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(GradingError):
    """Class has no curriculum type, or an unrecognised one. Blocks the whole sheet."""

    title = 'Curriculum Configuration Required'
    remediation = (
        'Please contact your system administrator to update the class curriculum type.'
    )


class LoadError(GradingError):
    """Roster, subject or grade fetch failed after retries."""

    title = 'Grading Data Unavailable'


class ValidationError(GradingError):
    """Missing scope identifier or invalid cell value. `field` names the culprit."""

    title = 'Invalid Input'

    def __init__(self, message, field=None, **details):
        super().__init__(message, **details)
        self.field = field


class EditNotAllowedError(GradingError):
    """The permission gate refused a save or submit."""

    title = 'Editing Locked'

    def __init__(self, message, status=None, **details):
        super().__init__(message, **details)
        self.status = status


class PersistenceError(GradingError):
    """A write failed. In-memory edits are kept so the user can retry."""

    title = 'Save Failed'
