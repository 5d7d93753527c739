"""Central application exception hierarchy.

This module defines the base application exception ``AppError`` and the
specialized subclasses raised while rendering lessons: missing files and
attributes, malformed run scripts, failed evaluations and failed sandbox
runs. Every failure a lesson build can hit is one of these, so the CLI
boundary only has to catch ``AppError``.
"""

from __future__ import annotations

from typing import Any, Mapping


class AppError(Exception):
    """Base exception for all application-level errors.

    Parameters
    ----------
    code : str
        Machine-readable error code (e.g., ``'MISSING_FILE'``).
    message : str
        Human-readable message describing the error.
    context : Mapping[str, Any] | None, optional
        Optional structured context for logging.

    Attributes
    ----------
    code : str
        Stable machine-readable error code.
    message : str
        Human-readable message.
    context : dict
        Structured, non-sensitive context for logging.

    Examples
    --------
    >>> e = AppError('CODE', 'message', context={'k': 'v'})
    >>> e.code
    'CODE'
    """

    __slots__ = ("code", "message", "context")

    def __init__(
        self,
        code: str,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = dict(context or {})

    def __str__(self) -> str:
        """Return a compact string representation of the error."""
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Return a log-safe dictionary representation of the error."""
        return {
            "error_code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(AppError):
    """Raised for invalid or missing configuration."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("CONFIGURATION_ERROR", message, context=context)


class MissingFileError(AppError):
    """Raised when an embedded file, run script or eval file does not exist."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("MISSING_FILE", message, context=context)


class UnreadableFileError(AppError):
    """Raised when a lesson file exists but cannot be read or is not UTF-8 text."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("UNREADABLE_FILE", message, context=context)


class MissingAttributeError(AppError):
    """Raised when a self-eval marker names a key absent from the evaluation map."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("MISSING_ATTRIBUTE", message, context=context)


class NoFileSpecifiedError(AppError):
    """Raised when an evaluation command is given without ``-f``/``--file``."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("NO_FILE_SPECIFIED", message, context=context)


class MalformedArgumentsError(AppError):
    """Raised when command arguments cannot be parsed."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("MALFORMED_ARGUMENTS", message, context=context)


class EvaluationError(AppError):
    """Raised when the expression evaluator exits unsuccessfully."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("EVALUATION_ERROR", message, context=context)


class NonZeroExitError(AppError):
    """Raised when a sandboxed script exits with a non-zero status.

    The captured ``stdout`` and ``stderr`` and the ``returncode`` are kept in
    ``context`` for diagnosis.
    """

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("NON_ZERO_EXIT", message, context=context)


class LessonRenderError(AppError):
    """Raised when one marker of a lesson fails; names the lesson and the marker.

    The original error is chained as ``__cause__`` and its code is kept in
    ``context['cause_code']``.
    """

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("LESSON_RENDER_ERROR", message, context=context)
