"""Typed failures surfaced to engine callers."""


class CadenceError(Exception):
    """Base class for all engine errors."""


class NotFoundError(CadenceError):
    """Unknown card or lesson id."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidRatingError(CadenceError):
    """Rating outside the canonical 1-4 range."""

    def __init__(self, rating: object):
        self.rating = rating
        super().__init__(f"Rating must be one of 1, 2, 3, 4 (got {rating!r})")


class InvalidTransitionError(CadenceError):
    """A state machine was asked to move along an edge it does not have."""

    def __init__(self, subject: str, current: str, target: str, detail: str | None = None):
        self.subject = subject
        self.current = current
        self.target = target
        message = f"{subject}: cannot transition from '{current}' to '{target}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SessionExhaustedError(CadenceError):
    """The session queue has no item left to advance."""


class CurriculumError(CadenceError):
    """Malformed curriculum definition or prerequisite cycle."""
