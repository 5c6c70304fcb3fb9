"""
Error types raised by the block time engine.

Every error carries the operation that failed and a details dict so the
command line can print it verbatim without inspecting internals.
"""

from typing import Any, Optional


class BlockTimeError(Exception):
    """Base exception for all block time errors."""

    def __init__(self, message: str, operation: str = "", details: Optional[dict[str, Any]] = None):
        self.message = message
        self.operation = operation
        self.details = details or {}
        if operation:
            super().__init__(f"{operation}: {message}")
        else:
            super().__init__(message)

    def to_dict(self) -> dict:
        result = {
            "error": type(self).__name__,
            "message": self.message,
        }
        if self.operation:
            result["operation"] = self.operation
        if self.details:
            result["details"] = self.details
        return result


class InvalidRange(BlockTimeError):
    def __init__(self, start_height: int, end_height: int, operation: str = "fetch"):
        if start_height > end_height:
            msg = f"invalid range: start {start_height} > end {end_height}"
        else:
            msg = f"invalid range: heights must be >= 1 (got {start_height}..{end_height})"
        super().__init__(msg, operation, {"start_height": start_height, "end_height": end_height})


class InsufficientSample(BlockTimeError):
    def __init__(self, what: str, got: int, minimum: int, operation: str = "calculate"):
        super().__init__(
            f"insufficient {what}: {got} < minimum {minimum}",
            operation,
            {"got": got, "minimum": minimum},
        )


class InvalidArgument(BlockTimeError):
    def __init__(self, param: str, message: str = "", operation: str = ""):
        msg = f"invalid argument: {param}"
        if message:
            msg += f" - {message}"
        super().__init__(msg, operation, {"parameter": param})


class UpstreamFailure(BlockTimeError):
    """A chain query failed. ``height`` is None for head-height queries."""

    def __init__(self, message: str, operation: str = "", height: Optional[int] = None):
        self.height = height
        details = {"height": height} if height is not None else {}
        super().__init__(message, operation, details)


class BlockNotFound(UpstreamFailure):
    def __init__(self, height: int, operation: str = "get_block", reason: str = ""):
        msg = f"block {height} not found"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg, operation, height)


class ChainConnectionError(UpstreamFailure):
    pass


class ChainTimeout(UpstreamFailure):
    pass


class FetchCancelled(BlockTimeError):
    def __init__(self, start_height: int, end_height: int, admitted: int):
        super().__init__(
            f"fetch of {start_height}..{end_height} cancelled after {admitted} requests",
            "fetch",
            {"start_height": start_height, "end_height": end_height, "admitted": admitted},
        )


class ConfigError(BlockTimeError):
    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems), "config", {"problems": problems})
