"""
Tagged results returned by the service layer.

Services return ``Ok`` or ``Err`` for every expected outcome (bad input,
missing rows, ownership, eligibility) and only raise for faults they
cannot classify. Views turn either side into the response envelope.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    ELIGIBILITY = "eligibility"
    INTERNAL = "internal"


@dataclass(frozen=True)
class Ok:
    data: Any = field(default_factory=list)
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str

    @property
    def ok(self) -> bool:
        return False


def not_found(detail) -> Err:
    return Err(ErrorKind.NOT_FOUND, str(detail))


def ineligible(detail) -> Err:
    return Err(ErrorKind.ELIGIBILITY, str(detail))


def invalid(detail) -> Err:
    return Err(ErrorKind.VALIDATION, str(detail))


def forbidden(detail) -> Err:
    return Err(ErrorKind.AUTHORIZATION, str(detail))
