"""
Error taxonomy shared by SEVEN T packages.

Services raise these; handlers, loops and the webhook translate them into
status dicts or HTTP responses.
"""

from typing import Any


class SevenError(Exception):
    """Base error with a machine readable code."""

    default_code = "error"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.details}


class NotFoundError(SevenError):
    default_code = "not_found"


class InvalidStateError(SevenError):
    """Entity exists but is not in a state that allows the operation."""

    default_code = "invalid_state"


class InsufficientStockError(SevenError):
    default_code = "insufficient_stock"

    def __init__(self, message: str, stock_issues: list[dict[str, Any]]):
        super().__init__(message, details={"stock_issues": stock_issues})
        self.stock_issues = stock_issues


class InsufficientCreditsError(SevenError):
    default_code = "insufficient_credits"


class ConfigurationError(SevenError):
    default_code = "configuration"
