"""Explicit result variants for operations that may degrade.

``Success`` carries a value. ``Recoverable`` means "nothing useful, keep
quiet": the caller answers with an empty result. ``UserFacingFailure`` means
the problem was (or must be) shown to the user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Recoverable:
    reason: str


@dataclass(frozen=True)
class UserFacingFailure:
    message: str


Outcome = Union[Success[T], Recoverable, UserFacingFailure]


def value_or(outcome: Outcome[T], default: T) -> T:
    if isinstance(outcome, Success):
        return outcome.value
    return default
