from __future__ import annotations

from dataclasses import dataclass

PARSE_FAILURE = "parse_failure"
UNREADABLE = "unreadable"
TOO_LARGE = "too_large"
CONFIG = "config"


class RouteMapError(Exception):
    """Base class for errors raised to callers of the discovery engine."""


class ProjectRootError(RouteMapError):
    pass


class ParseFailure(RouteMapError):
    def __init__(self, message: str, line: int = 0, column: int = 0) -> None:
        super().__init__(message)
        self.line = line
        self.column = column


@dataclass(frozen=True)
class Diagnostic:
    """A recoverable problem recorded during a scan. Scans never abort on these."""

    kind: str
    path: str
    message: str

    def __str__(self) -> str:
        if self.path:
            return f"{self.kind}: {self.path}: {self.message}"
        return f"{self.kind}: {self.message}"
