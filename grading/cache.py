"""
grading/cache.py - Read-side cache for one grading session

Entries are keyed by structured tuples rather than concatenated strings.
Binding the cache to a different school, class, term or exam type drops
everything; a successful write drops the grades of that sheet.
"""

import logging

logger = logging.getLogger(__name__)


class GradingCache:

    def __init__(self):
        self._bound = None
        self._class_data = {}
        self._grades = {}

    @staticmethod
    def class_key(scope, class_id):
        return (scope.school_id, class_id, scope.actor_key)

    @staticmethod
    def grades_key(scope, sheet):
        return (scope.school_id, sheet.class_id, sheet.term, sheet.exam_type, scope.actor_key)

    def bind(self, scope, sheet):
        """Point the cache at a sheet; a changed scope invalidates every entry."""
        bound = (scope.school_id, scope.actor_key, sheet.class_id, sheet.term, sheet.exam_type)
        if self._bound is not None and bound != self._bound:
            logger.debug('Grading scope changed from %s to %s, clearing cache', self._bound, bound)
            self.clear()
        self._bound = bound

    def clear(self):
        self._class_data.clear()
        self._grades.clear()

    def get_class_data(self, scope, class_id):
        return self._class_data.get(self.class_key(scope, class_id))

    def put_class_data(self, scope, class_id, students, subjects):
        self._class_data[self.class_key(scope, class_id)] = (students, subjects)

    def get_grades(self, scope, sheet):
        return self._grades.get(self.grades_key(scope, sheet))

    def put_grades(self, scope, sheet, loaded):
        self._grades[self.grades_key(scope, sheet)] = loaded

    def invalidate_grades(self, scope, sheet):
        self._grades.pop(self.grades_key(scope, sheet), None)
