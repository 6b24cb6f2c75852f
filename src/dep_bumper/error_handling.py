"""
Error handling for dep-bumper.

Defines the exception hierarchy raised by the checker and provides structured,
credential-safe logging of handled errors across all modules.
"""

import logging
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse


class DepBumperError(Exception):
    """Base class for all errors raised by dep-bumper."""


class ManifestError(DepBumperError):
    """The manifest is missing, unreadable, malformed or has nothing to check."""


class RegistryError(DepBumperError):
    """A version catalog could not be retrieved or was invalid."""

    def __init__(self, message: str, package: Optional[str] = None):
        super().__init__(message)
        self.package = package


class ManifestWriteError(DepBumperError):
    """The updated manifest could not be written back."""


class ErrorLevel(Enum):
    """Severity of a handled error, valued as the stdlib logging level."""

    WARNING = logging.WARNING
    ERROR = logging.ERROR


class ErrorCategory(Enum):
    """Error categories for better classification."""

    MANIFEST = "MANIFEST"
    NETWORK = "NETWORK"
    RESOLUTION = "RESOLUTION"
    CREDENTIAL = "CREDENTIAL"
    CONFIGURATION = "CONFIGURATION"
    FILESYSTEM = "FILESYSTEM"


@dataclass
class ErrorContext:
    """A handled error as it was recorded."""

    level: ErrorLevel
    category: ErrorCategory
    message: str
    location: str
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[Exception] = None
    suggestions: List[str] = field(default_factory=list)


_SENSITIVE_PATTERNS = [
    (r'_authToken["\s]*[:=]["\s]*([^\s"\']+)', '_authToken="[REDACTED]"'),
    (r'_auth["\s]*[:=]["\s]*([^\s"\']+)', '_auth="[REDACTED]"'),
    (r'_password["\s]*[:=]["\s]*([^\s"\']+)', '_password="[REDACTED]"'),
    (r'token["\s]*[:=]["\s]*([a-zA-Z0-9_\-+=/.]{8,})', 'token="[REDACTED]"'),
    (r'password["\s]*[:=]["\s]*([^\s"\']+)', 'password="[REDACTED]"'),
    (r"(https?://[^@\s/]+:)[^@\s]+@", r"\1[REDACTED]@"),
    (r"Authorization:\s*\w+\s+([^\s]+)", "Authorization: [REDACTED]"),
]


def sanitize_message(message: str) -> str:
    """Remove tokens, passwords and URL credentials from a message."""
    sanitized = message
    for pattern, replacement in _SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
    return sanitized


_SENSITIVE_KEYS = ("token", "password", "secret", "credential", "auth")


def sanitize_details(details: Dict[str, Any]) -> Dict[str, Any]:
    """Redact credential-looking keys and scrub string values, recursively."""
    sanitized: Dict[str, Any] = {}
    for key, value in details.items():
        if any(word in key.lower() for word in _SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_details(value)
        elif isinstance(value, str):
            sanitized[key] = sanitize_message(value)
        else:
            sanitized[key] = value
    return sanitized


class ErrorHandler:
    """
    Logs handled errors with credentials removed and counts them.

    Counts are keyed ``CATEGORY_LEVEL``; the checker resets them when a run
    starts and reports them with the run summary.
    """

    def __init__(self, logger_name: str = "dep_bumper", log_level: int = logging.WARNING):
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(log_level)
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            self.logger.addHandler(handler)
        self.error_stats: Dict[str, int] = {}

    def handle_error(
        self,
        level: ErrorLevel,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        exception: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> ErrorContext:
        context = ErrorContext(
            level=level,
            category=category,
            message=sanitize_message(message),
            location=f"{module}.{function}",
            details=sanitize_details(details or {}),
            exception=exception,
            suggestions=suggestions or [],
        )

        key = f"{category.value}_{level.name}"
        self.error_stats[key] = self.error_stats.get(key, 0) + 1

        extra: Dict[str, Any] = {
            "category": category.value,
            "location": context.location,
            "details": context.details,
        }
        if exception is not None:
            extra["exception"] = type(exception).__name__
        if context.suggestions:
            extra["suggestions"] = context.suggestions
        self.logger.log(level.value, "%s | %s", context.message, extra)

        return context

    def warning(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        return self.handle_error(ErrorLevel.WARNING, category, message, module, function, **kwargs)

    def error(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        return self.handle_error(ErrorLevel.ERROR, category, message, module, function, **kwargs)

    def get_error_stats(self) -> Dict[str, int]:
        return dict(self.error_stats)

    def reset_stats(self) -> None:
        self.error_stats.clear()


_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    log_level: int = logging.WARNING, logger_name: str = "dep_bumper"
) -> ErrorHandler:
    """Replace the global error handler with a freshly configured one."""
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name, log_level)
    return _global_error_handler


def _sanitize_url(url: str) -> str:
    parsed = urlparse(url)
    sanitized_url = f"{parsed.scheme}://{parsed.hostname}"
    if parsed.port:
        sanitized_url += f":{parsed.port}"
    return sanitized_url + parsed.path


def log_manifest_error(
    message: str,
    module: str,
    function: str,
    file_path: Optional[str] = None,
    exception: Optional[Exception] = None,
):
    """
    Convenience function for logging manifest errors.

    Args:
        message: Error message
        module: Module name
        function: Function name
        file_path: Manifest being read or written
        exception: Optional exception
    """
    details = {}
    if file_path is not None:
        # Only the filename, not the full path
        details["file_path"] = Path(file_path).name

    get_error_handler().warning(
        ErrorCategory.MANIFEST,
        message,
        module,
        function,
        details=details,
        exception=exception,
        suggestions=[
            "Check that package.json exists and is valid JSON",
            "Verify the --file argument points to a file or module directory",
        ],
    )


def log_network_error(
    message: str,
    module: str,
    function: str,
    url: Optional[str] = None,
    status_code: Optional[int] = None,
    exception: Optional[Exception] = None,
):
    """
    Convenience function for logging network errors.

    Args:
        message: Error message
        module: Module name
        function: Function name
        url: URL that failed (credentials are stripped)
        status_code: HTTP status code
        exception: Optional exception
    """
    details: Dict[str, Any] = {}
    if url is not None:
        details["url"] = _sanitize_url(url)
    if status_code is not None:
        details["status_code"] = status_code

    get_error_handler().error(
        ErrorCategory.NETWORK,
        message,
        module,
        function,
        details=details,
        exception=exception,
        suggestions=[
            "Check network connectivity",
            "Verify registry URL is correct",
            "Check if authentication is required",
        ],
    )


def log_credential_error(
    message: str,
    module: str,
    function: str,
    credential_type: Optional[str] = None,
    exception: Optional[Exception] = None,
):
    """Convenience function for logging credential errors."""
    details = {}
    if credential_type is not None:
        details["credential_type"] = credential_type

    get_error_handler().warning(
        ErrorCategory.CREDENTIAL,
        message,
        module,
        function,
        details=details,
        exception=exception,
        suggestions=[
            "Verify the token in .npmrc is valid and not expired",
            "Check that referenced environment variables are set",
        ],
    )
