"""
Ok/Err values for lookups whose absence the caller must rule on.

A ``.nuspec`` manifest can be missing any of its required elements. Rather
than raise from deep inside the element helpers, those helpers hand back an
``Err`` carrying a ``ManifestInvalidError``; the code that actually needs the
element calls ``unwrap()`` and the error surfaces there.

    >>> from shipkit.core.errors import ManifestInvalidError
    >>> ok_or(None, ManifestInvalidError("no <id>")).is_err()
    True
    >>> Ok("Web").flat_map(lambda v: Ok(v + ".Tests")).unwrap()
    'Web.Tests'

Both variants are dataclasses, so ``match`` works on them::

    match document.metadata():
        case Ok(metadata): ...
        case Err(error): ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """A value that was found."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, fallback: T) -> T:
        return self.value

    def flat_map(self, step: Callable[[T], Result[U]]) -> Result[U]:
        """Feed the value to the next lookup."""
        return step(self.value)


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """A lookup that failed; ``error`` is raised by ``unwrap()``."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        raise self.error

    def unwrap_or(self, fallback: T) -> T:
        return fallback

    def flat_map(self, step: Callable[[T], Result[U]]) -> Result[U]:
        # The first failure in a chain wins.
        return Err(self.error)


Result = Ok[T] | Err[T]


def ok_or(value: T | None, error: Exception) -> Result[T]:
    """``Ok(value)``, or ``Err(error)`` when ``value`` is None.

    Falsy values such as ``""`` still count as present.
    """
    return Err(error) if value is None else Ok(value)


__all__ = ["Err", "Ok", "Result", "ok_or"]
