"""Custom exception hierarchy for the UI smoke harness."""
from __future__ import annotations

from typing import Any, Optional


class SmokeError(Exception):
    """Base exception for all smoke-harness errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Runtime exceptions
class ServerUnreachableError(SmokeError):
    """Raised when no host alias answered the readiness probe."""

    def __init__(self, hosts: list[str], port: int):
        super().__init__(
            f"Server did not become reachable on {' or '.join(hosts)}.",
            {"hosts": hosts, "port": port},
        )
        self.hosts = hosts
        self.port = port


class BrowserLaunchError(SmokeError):
    """Raised when every browser candidate failed to launch."""

    def __init__(self, errors: list[dict[str, Any]]):
        super().__init__(
            "Browser failed to launch despite executable checks.",
            {"attempts": len(errors)},
        )
        self.errors = errors


class NavigationError(SmokeError):
    """Raised when a navigation strategy gives up."""

    def __init__(
        self,
        message: str,
        strategy: Optional[str] = None,
        target: Optional[str] = None,
    ):
        details = {}
        if strategy:
            details["strategy"] = strategy
        if target:
            details["target"] = target
        super().__init__(message, details)
        self.strategy = strategy
        self.target = target


# Configuration exceptions
class ConfigurationError(SmokeError):
    """Raised when configuration is invalid."""

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when an explicitly requested config file is not found."""

    def __init__(self, file_path: str):
        super().__init__(f"Configuration file not found: {file_path}", {"file_path": file_path})
        self.file_path = file_path
