"""
Exception hierarchy for the MCQ quiz engine.
"""


class QuizError(Exception):
    """Base exception for quiz engine errors."""
    pass


class EmptyQuestionBankError(QuizError):
    """Raised when a quiz has no questions to run."""
    pass


class MalformedQuestionError(QuizError):
    """Raised when a question has too few options or an invalid correct-answer index."""
    pass


class InvalidTransitionError(QuizError):
    """Raised when an operation is attempted outside its valid session state."""
    pass


class PersistenceUnavailableError(QuizError):
    """Raised when the attempt history cannot be read from or written to storage."""
    pass
