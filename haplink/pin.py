"""The eight-digit setup code a controller enters to pair with the server."""

from __future__ import annotations

from collections.abc import Iterable

__all__ = ["InvalidPinError", "Pin", "PinTooEasyError"]

_PIN_LENGTH = 8

_TOO_EASY: frozenset[tuple[int, ...]] = frozenset(
    {
        (1, 2, 3, 4, 5, 6, 7, 8),
        (8, 7, 6, 5, 4, 3, 2, 1),
        *((digit,) * _PIN_LENGTH for digit in range(10)),
    }
)


class PinTooEasyError(ValueError):
    """The pin is one of the codes that are considered too easy to guess."""


class InvalidPinError(ValueError):
    """The pin is not made of eight digits between 0 and 9."""


def _is_digit(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 9


class Pin:
    """The server's pairing pin: eight digits, shown as ``XXX-XX-XXX``.

    Sequential codes (``12345678``, ``87654321``) and codes made of one
    repeated digit are rejected as too easy.
    """

    __slots__ = ("_digits",)

    def __init__(self, digits: Iterable[int]) -> None:
        values = tuple(digits)
        if values in _TOO_EASY:
            raise PinTooEasyError(f"pin {values!r} is too easy to guess")
        if len(values) != _PIN_LENGTH or not all(_is_digit(d) for d in values):
            raise InvalidPinError(
                f"pin must be {_PIN_LENGTH} digits between 0 and 9, got {values!r}"
            )
        self._digits: tuple[int, ...] = values

    @classmethod
    def default(cls) -> Pin:
        """Return the default pin, ``111-22-333``."""
        return cls((1, 1, 1, 2, 2, 3, 3, 3))

    @property
    def digits(self) -> tuple[int, ...]:
        """The eight digits of the pin."""
        return self._digits

    def __str__(self) -> str:
        text = "".join(str(d) for d in self._digits)
        return f"{text[:3]}-{text[3:5]}-{text[5:]}"

    def __repr__(self) -> str:
        return f"Pin({list(self._digits)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pin):
            return NotImplemented
        return self._digits == other._digits

    def __hash__(self) -> int:
        return hash(self._digits)