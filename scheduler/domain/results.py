"""Typed results returned across the core boundary."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from scheduler.domain.errors import (
    ErrorKind,
    OverlapViolation,
    ServiceError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Either a success ``value`` or a ``ServiceError``, never both."""

    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def service_boundary(func: Callable[..., Any]) -> Callable[..., Result[Any]]:
    """Run *func* and fold every outcome into a :class:`Result`.

    Expected conditions arrive as ``ServiceError``.  A rejected write from
    the event store's exclusion constraint is the authoritative conflict
    signal, so it is reported the same way as a pre-checked conflict.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Result[Any]:
        try:
            return Result(value=func(*args, **kwargs))
        except ServiceError as exc:
            return Result(error=exc)
        except OverlapViolation as exc:
            logger.warning("Write rejected by overlap constraint: %s", exc)
            return Result(
                error=ServiceError(
                    ErrorKind.CONFLICT,
                    "An event already exists at the specified date and time",
                    dates=exc.dates,
                )
            )
        except StoreUnavailableError as exc:
            logger.warning("Store unavailable in %s: %s", func.__qualname__, exc)
            return Result(
                error=ServiceError(ErrorKind.UNAVAILABLE, "Service temporarily unavailable")
            )
        except Exception:
            logger.exception("Unexpected failure in %s", func.__qualname__)
            return Result(error=ServiceError(ErrorKind.INTERNAL, "Internal Server Error"))

    return wrapper
