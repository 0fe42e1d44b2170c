"""
Error Handling System for LearnAI

This module provides the error handling framework shared by the progress engine:
1. Exception hierarchy (not found, validation, transient I/O)
2. A reusable retry policy with exponential backoff for transient failures
3. Structured error logging and reporting
4. Error response generation for the HTTP layer
"""

import logging
import asyncio
import random
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, TypeVar, Union
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from learnai.common.logger import app_logger

T = TypeVar('T')

logger = app_logger.getChild("common.errors")


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Standard error codes"""
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND_ERROR = "not_found_error"

    STUDENT_NOT_FOUND = "student_not_found"
    TOPIC_NOT_FOUND = "topic_not_found"
    SESSION_NOT_FOUND = "session_not_found"
    CONCEPT_NOT_FOUND = "concept_not_found"

    TRANSIENT_IO_ERROR = "transient_io_error"
    DATABASE_ERROR = "database_error"
    DATABASE_CONNECTION_ERROR = "database_connection_error"
    DATABASE_QUERY_ERROR = "database_query_error"
    CACHE_ERROR = "cache_error"
    CACHE_CONNECTION_ERROR = "cache_connection_error"


_NOT_FOUND_CODES = {
    "student": ErrorCode.STUDENT_NOT_FOUND,
    "topic": ErrorCode.TOPIC_NOT_FOUND,
    "session": ErrorCode.SESSION_NOT_FOUND,
    "concept": ErrorCode.CONCEPT_NOT_FOUND,
}


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def split_stack_trace(cls, v):
        if isinstance(v, str):
            return v.splitlines()
        return v


class LearnAIError(Exception):
    """Base exception class for all LearnAI errors"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=traceback.format_exc() if include_stack_trace else None,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {self.cause}"
        return base_str


class ValidationError(LearnAIError):
    """Error raised when input validation fails"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class NotFoundError(LearnAIError):
    """Error raised when a student, topic, session or concept does not exist"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["resource_type"] = resource_type
        details["resource_id"] = resource_id
        self.resource_type = resource_type
        self.resource_id = resource_id

        super().__init__(
            message=f"{resource_type.capitalize()} with ID {resource_id} not found",
            code=_NOT_FOUND_CODES.get(resource_type.lower(), ErrorCode.NOT_FOUND_ERROR),
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class TransientIOError(LearnAIError):
    """Base class for failures of the database or cache that may succeed on retry"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.TRANSIENT_IO_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code, severity, details, cause, context)


class DatabaseError(TransientIOError):
    """Base class for database-related errors"""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.DATABASE_ERROR, **kwargs):
        super().__init__(message, code=code, **kwargs)


class DatabaseConnectionError(DatabaseError):
    """Error raised when the database cannot be reached"""

    def __init__(
        self,
        database: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["database"] = database

        super().__init__(
            message=f"Failed to connect to database {database}",
            code=ErrorCode.DATABASE_CONNECTION_ERROR,
            severity=ErrorSeverity.CRITICAL,
            details=details,
            cause=cause,
            context=context
        )


class DatabaseQueryError(DatabaseError):
    """Error raised when a database query fails"""

    def __init__(
        self,
        query_type: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["query_type"] = query_type

        super().__init__(
            message=f"Database query of type {query_type} failed",
            code=ErrorCode.DATABASE_QUERY_ERROR,
            details=details,
            cause=cause,
            context=context
        )


class CacheError(TransientIOError):
    """Base class for cache-related errors"""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.CACHE_ERROR, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        super().__init__(message, code=code, **kwargs)


class CacheConnectionError(CacheError):
    """Error raised when the cache server cannot be reached"""

    def __init__(
        self,
        cache_name: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["cache"] = cache_name

        super().__init__(
            message=f"Failed to connect to cache {cache_name}",
            code=ErrorCode.CACHE_CONNECTION_ERROR,
            details=details,
            cause=cause,
            context=context
        )


def convert_exception(
    exception: BaseException,
    default_message: str = "An unexpected error occurred",
    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
    context: Optional[Dict[str, Any]] = None
) -> LearnAIError:
    """
    Convert a standard exception to a LearnAIError.

    Existing LearnAIError instances are returned as-is with the context merged in.
    """
    if isinstance(exception, LearnAIError):
        if context:
            exception.context.update(context)
        return exception

    return LearnAIError(
        message=str(exception) or default_message,
        code=default_code,
        cause=exception,
        context=context
    )


def is_transient_error(error: BaseException) -> bool:
    """Default retryable-error predicate: only transient I/O failures are retried."""
    return isinstance(error, TransientIOError)


@dataclass
class RetryPolicy:
    """
    Retry with exponential backoff and jitter.

    One policy instance is shared by every outbound call (database
    repositories and the Redis cache backend). ``retryable`` decides which
    exceptions are retried; everything else propagates immediately. After
    ``max_retries`` retries the last exception is re-raised.
    """

    max_retries: int = 3
    base_delay: float = 0.5
    backoff_factor: float = 2.0
    jitter: float = 0.1
    retryable: Callable[[BaseException], bool] = is_transient_error
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    @classmethod
    def from_config(cls, config, retryable: Optional[Callable[[BaseException], bool]] = None) -> "RetryPolicy":
        """Build a policy from a ``RetryConfig`` section."""
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            backoff_factor=config.backoff_factor,
            jitter=config.jitter,
            retryable=retryable or is_transient_error,
        )

    def with_predicate(self, retryable: Callable[[BaseException], bool]) -> "RetryPolicy":
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            backoff_factor=self.backoff_factor,
            jitter=self.jitter,
            retryable=retryable,
            on_retry=self.on_retry,
            sleep=self.sleep,
        )

    def delays(self) -> Iterator[float]:
        """Yield the delay before each retry attempt."""
        delay = self.base_delay
        for _ in range(self.max_retries):
            yield max(0.0, delay * (1 + random.uniform(-self.jitter, self.jitter)))
            delay *= self.backoff_factor

    def _before_retry(self, attempt: int, error: BaseException, delay: float, name: str) -> None:
        if self.on_retry:
            self.on_retry(attempt, error, delay)
        logger.warning(
            f"Retry {attempt}/{self.max_retries} for {name} "
            f"after {delay:.2f}s due to {type(error).__name__}: {error}"
        )

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``func(*args, **kwargs)``, retrying retryable failures."""
        name = getattr(func, "__name__", repr(func))
        delays = self.delays()
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e):
                    raise
                delay = next(delays, None)
                if delay is None:
                    raise
                attempt += 1
                self._before_retry(attempt, e, delay, name)
                await self.sleep(delay)


class AsyncErrorTracer:
    """
    Async context manager for tracing errors.

    Logs exceptions raised inside the block with the given context and
    re-raises them as LearnAIError instances (``capture_as`` selects the
    subclass used for foreign exceptions).
    """

    def __init__(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        log_level: int = logging.ERROR,
        capture_as: Optional[Callable[..., LearnAIError]] = None
    ):
        self.operation = operation
        self.context = dict(context or {})
        self.context["operation"] = operation
        self.log_level = log_level
        self.capture_as = capture_as

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_val is None:
            return False

        if not isinstance(exc_val, Exception):
            return False

        if isinstance(exc_val, LearnAIError) or self.capture_as is None:
            error = convert_exception(exc_val, context=self.context)
        else:
            error = self.capture_as(self.operation, cause=exc_val, context=self.context)

        log_error(error, level=self.log_level, include_stack_trace=False)
        if error is exc_val:
            return False
        raise error from exc_val


def error_response(
    error: Union[LearnAIError, Exception],
    include_details: bool = True,
    include_stack_trace: bool = False
) -> Dict[str, Any]:
    """
    Generate a standardized API error response.

    Args:
        error: The error to generate a response for
        include_details: Whether to include error details
        include_stack_trace: Whether to include stack trace

    Returns:
        Standardized error response dictionary
    """
    if not isinstance(error, LearnAIError):
        error = convert_exception(error)

    error_info = error.to_error_info(include_stack_trace=include_stack_trace)

    response = {
        "status": "error",
        "code": error_info.code,
        "message": error_info.message
    }

    if include_details and error_info.details:
        response["details"] = error_info.details

    return response


def log_error(
    error: Union[LearnAIError, Exception],
    level: int = logging.ERROR,
    include_stack_trace: bool = True,
    context: Optional[Dict[str, Any]] = None,
    log: Optional[logging.Logger] = None
) -> None:
    """
    Log an error with standardized format.

    Args:
        error: The error to log
        level: Logging level
        include_stack_trace: Whether to include stack trace
        context: Additional context to include (student/session identifiers)
        log: Logger to use, defaults to the error-handling logger
    """
    if not isinstance(error, LearnAIError):
        error = convert_exception(error, context=context)
    elif context:
        error.context.update(context)

    message = f"ERROR [{error.code.value}]: {error.message}"

    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"

    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {error.cause}"

    (log or logger).log(level, message, exc_info=include_stack_trace)
