import pytest

from haplink.pin import InvalidPinError, Pin, PinTooEasyError


def test_to_string():
    pin = Pin([1, 1, 1, 2, 2, 3, 3, 3])
    assert str(pin) == "111-22-333"


def test_default_pin():
    assert str(Pin.default()) == "111-22-333"
    assert Pin.default() == Pin([1, 1, 1, 2, 2, 3, 3, 3])


@pytest.mark.parametrize(
    "digits",
    [
        [1, 2, 3, 4, 5, 6, 7, 8],
        [8, 7, 6, 5, 4, 3, 2, 1],
        [0] * 8,
        [1] * 8,
        [5] * 8,
        [9] * 8,
    ],
)
def test_too_easy_pins_are_rejected(digits):
    with pytest.raises(PinTooEasyError):
        Pin(digits)


def test_digit_out_of_range_is_invalid():
    with pytest.raises(InvalidPinError):
        Pin([0, 0, 0, 0, 0, 0, 0, 123])


def test_negative_digit_is_invalid():
    with pytest.raises(InvalidPinError):
        Pin([1, 1, 1, 2, 2, 3, 3, -1])


@pytest.mark.parametrize("digits", [[1, 1, 1], [1, 1, 1, 2, 2, 3, 3, 3, 4], []])
def test_wrong_length_is_invalid(digits):
    with pytest.raises(InvalidPinError):
        Pin(digits)


def test_digits_are_kept_in_order():
    pin = Pin(iter([4, 0, 4, 1, 2, 7, 3, 9]))
    assert pin.digits == (4, 0, 4, 1, 2, 7, 3, 9)


def test_equal_pins_hash_alike():
    assert {Pin([1, 1, 1, 2, 2, 3, 3, 3]), Pin.default()} == {Pin.default()}