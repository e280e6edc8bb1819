"""Failures raised by the allocation engine."""

from __future__ import annotations


INT64_MAX = (1 << 63) - 1


class AllocatorError(RuntimeError):
    """Base class for allocation engine failures."""


class ArithmeticOverflow(AllocatorError):
    """A planning value left the signed 64-bit range (misconfiguration)."""


class UnsupportedPolicy(AllocatorError):
    """The active policy has no invocation path on this engine."""


def checked_mul(a: int, b: int) -> int:
    """Multiply planning quantities, refusing results outside the int64 range."""

    product = a * b
    if product > INT64_MAX or product < -INT64_MAX - 1:
        raise ArithmeticOverflow(f"planning overflow: {a} * {b} exceeds int64")
    return product


def ceil_div(a: int, b: int) -> int:
    return -(-a // b)
