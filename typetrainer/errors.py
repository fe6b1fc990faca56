# typetrainer/errors.py
from __future__ import annotations


class TypeTrainerError(Exception):
    """Base class for everything the practice engine raises on purpose."""


class InputValidationError(TypeTrainerError, ValueError):
    """A request payload was malformed; nothing was mutated."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class PersistenceFailure(TypeTrainerError):
    """A storage call failed. Local session state is left alone."""


class TextNotFound(TypeTrainerError, LookupError):
    """The text does not exist or is not owned by the requesting user."""

    def __init__(self, text_id, user_id=None):
        super().__init__(f"text {text_id} not found for user {user_id}")
        self.text_id = text_id
        self.user_id = user_id


class ReflowError(TypeTrainerError, ValueError):
    """Reflow was asked for an impossible width. Callers floor the width first."""
