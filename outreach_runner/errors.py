"""Structured errors raised inside the runner and its collaborators."""

from __future__ import annotations


class RunnerError(RuntimeError):
    """Structured error from a queue, platform or automation step."""

    def __init__(
        self, code: str, message: str, screenshot_path: str | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.screenshot_path = screenshot_path


class TransientNetworkError(RunnerError):
    def __init__(self, message: str, code: str = "NETWORK_TRANSIENT") -> None:
        super().__init__(code, message)


class AuthExpiredError(RunnerError):
    """The backend token or the platform session is no longer valid."""

    def __init__(self, message: str = "Authentication expired") -> None:
        super().__init__("AUTH_EXPIRED", message)


class ElementNotFoundError(RunnerError):
    def __init__(self, what: str, attempts: int) -> None:
        super().__init__(
            "ELEMENT_NOT_FOUND", f"Could not find {what} after {attempts} attempts"
        )
        self.what = what
        self.attempts = attempts


class RateLimitExceeded(RunnerError):
    def __init__(self, retry_after: float, message: str | None = None) -> None:
        super().__init__(
            "RATE_LIMITED", message or f"Rate limited, retry after {retry_after:g}s"
        )
        self.retry_after = retry_after


class UnknownActionType(RunnerError):
    def __init__(self, action_type: str) -> None:
        super().__init__("UNKNOWN_ACTION", f"Unknown action type: {action_type}")
        self.action_type = action_type


class PlatformRequestError(RunnerError):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"PLATFORM_HTTP_{status}", message)
        self.status = status
