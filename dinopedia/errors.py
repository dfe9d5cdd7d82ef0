"""Exception types shared by the research pipeline, the REST client and the store."""
from __future__ import annotations


class DinopediaError(Exception):
    """Base exception for the project."""


class ConfigurationError(DinopediaError):
    """A required setting is missing or invalid. Never retried."""


class ExternalServiceError(DinopediaError):
    """Failure talking to an outbound collaborator (search, LLM, backend)."""

    def __init__(self, source: str, message: str, status_code: int | None = None):
        self.source = source
        self.status_code = status_code
        super().__init__(message)


class SearchError(ExternalServiceError):
    def __init__(self, message: str):
        super().__init__("tavily", message)


class ExtractionError(ExternalServiceError):
    def __init__(self, message: str):
        super().__init__("llm", message)


class PersistenceError(ExternalServiceError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__("backend", message, status_code)


class NotFoundError(DinopediaError):
    """The addressed dinosaur or image does not exist."""


class RetryExhaustedError(DinopediaError):
    def __init__(self, label: str, attempts: int, last_error: BaseException):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} 在 {attempts} 次尝试后仍然失败: {last_error}")
