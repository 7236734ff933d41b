"""
Terminal outcomes of a recommendation request.

Partial failures never surface here: readers and the catalog absorb them as
empty results. Only the conditions below reach the caller.
"""
from typing import Any


class RecommendError(Exception):
    """Base class for user-facing recommendation failures."""

    error_code = "RECOMMEND_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class NoUsername(RecommendError):
    error_code = "NO_USERNAME"

    def __init__(self) -> None:
        super().__init__("A Letterboxd username is required")


class InvalidMode(RecommendError):
    error_code = "INVALID_MODE"

    def __init__(self, mode, choices: list[str]) -> None:
        super().__init__(
            f"Unknown mode '{mode}'; choose one of: {', '.join(choices)}",
            details={"mode": mode, "choices": list(choices)},
        )


class MissingCredentials(RecommendError):
    error_code = "MISSING_CREDENTIALS"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            f"Missing credentials: {', '.join(missing)}",
            details={"missing": list(missing)},
        )


class NoData(RecommendError):
    error_code = "NO_DATA"

    def __init__(self, username: str) -> None:
        super().__init__(
            f"No public ratings, diary or watchlist found for '{username}'. "
            "Check that the profile exists and its activity is visible to everyone.",
            details={"username": username},
        )


class NoCandidates(RecommendError):
    error_code = "NO_CANDIDATES"

    def __init__(self, mode: str, reason: str = "") -> None:
        message = f"No candidate films available in {mode} mode"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"mode": mode})


class InsufficientTaste(RecommendError):
    error_code = "INSUFFICIENT_TASTE"

    def __init__(self, reason: str = "no seed films could be resolved") -> None:
        super().__init__(f"Could not build a taste profile: {reason}")


class UnexpectedFailure(RecommendError):
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(f"Error: {message}")
