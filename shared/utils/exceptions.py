"""Custom exception hierarchy for API-facing errors."""
from fastapi import HTTPException, status


class AdaptiveTutorException(Exception):
    """Base exception for all application errors."""
    pass


class SubjectNotFoundException(AdaptiveTutorException):
    """Raised when a subject is not found for a user."""

    def __init__(self, subject_id: str):
        self.subject_id = subject_id
        super().__init__(f"Subject {subject_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Subject {self.subject_id} not found"
        )


class LessonNotFoundException(AdaptiveTutorException):
    """Raised when an assessment names a lesson that is not in the plan."""

    def __init__(self, lesson_id: str):
        self.lesson_id = lesson_id
        super().__init__(f"Lesson {lesson_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Lesson {self.lesson_id} not found"
        )


class DatabaseException(AdaptiveTutorException):
    """Raised when database operations fail."""

    def __init__(self, operation: str, original_error: Exception):
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"Database {operation} failed: {str(original_error)}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database operation failed"
        )
