"""
Exceptions raised by services and the repository layer.

Validation problems use django.core.exceptions.ValidationError directly.
"""


class PersistenceError(Exception):
    """A write failed at the database and the transaction was rolled back."""

    def __init__(self, message, kind=None, original=None):
        super().__init__(message)
        self.kind = kind
        self.original = original


class RecordNotFound(Exception):
    """The requested record does not exist or is not visible."""


class OutOfScopeError(Exception):
    """The record belongs to a project outside the user's access scope."""

    def __init__(self, record_id=None, project_id=None):
        super().__init__(f'Record {record_id} is outside your project scope.')
        self.record_id = record_id
        self.project_id = project_id
