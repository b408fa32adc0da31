"""
Fractional ordering keys for sibling sequences.

Keys are strings over a base-62 alphabet that sort correctly with plain string
comparison.  Each key has a variable-length *integer* head (``a0`` .. ``zzzz…``
for non-negative values, ``Z…`` .. ``A…`` for negative ones) followed by an
optional fractional tail.  New keys can always be generated between two
existing ones without renumbering the rest of the run; the tail grows by about
one character per six insertions at the same spot.
"""

from __future__ import annotations

from typing import List, Optional

from .errors import InvalidOrderKey, OrderingExhausted

DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
ZERO = DIGITS[0]
SMALLEST_INTEGER = "A" + ZERO * 26
FIRST_KEY = "a" + ZERO
MAX_KEY_LENGTH = 512

_DIGIT_INDEX = {char: index for index, char in enumerate(DIGITS)}


def _digit(char: str) -> int:
    try:
        return _DIGIT_INDEX[char]
    except KeyError:
        raise InvalidOrderKey(f"invalid key digit: {char!r}") from None


def _midpoint(lower: str, upper: Optional[str]) -> str:
    """Return a fractional tail strictly between ``lower`` and ``upper``."""
    if upper is not None and lower >= upper:
        raise InvalidOrderKey(f"{lower!r} >= {upper!r}")
    if lower[-1:] == ZERO or (upper and upper[-1:] == ZERO):
        raise InvalidOrderKey("fractional part has a trailing zero")
    if upper:
        # Shared prefix first; the midpoint lives after it.
        n = 0
        while (lower[n] if n < len(lower) else ZERO) == upper[n]:
            n += 1
        if n > 0:
            return upper[:n] + _midpoint(lower[n:], upper[n:])
    digit_lower = _digit(lower[0]) if lower else 0
    digit_upper = _digit(upper[0]) if upper is not None else len(DIGITS)
    if digit_upper - digit_lower > 1:
        return DIGITS[(digit_lower + digit_upper + 1) // 2]
    if upper and len(upper) > 1:
        return upper[:1]
    return DIGITS[digit_lower] + _midpoint(lower[1:], None)


def _integer_length(head: str) -> int:
    if "a" <= head <= "z":
        return ord(head) - ord("a") + 2
    if "A" <= head <= "Z":
        return ord("Z") - ord(head) + 2
    raise InvalidOrderKey(f"invalid key head: {head!r}")


def _integer_part(key: str) -> str:
    length = _integer_length(key[0])
    if length > len(key):
        raise InvalidOrderKey(f"invalid key: {key!r}")
    return key[:length]


def validate_key(key: str) -> None:
    """Raise :class:`InvalidOrderKey` if ``key`` is not a well-formed key."""
    if not isinstance(key, str) or not key:
        raise InvalidOrderKey(f"invalid key: {key!r}")
    if key == SMALLEST_INTEGER:
        raise InvalidOrderKey(f"invalid key: {key!r}")
    integer = _integer_part(key)
    for char in key:
        _digit(char)
    if key[len(integer) :][-1:] == ZERO:
        raise InvalidOrderKey(f"invalid key: {key!r}")


def is_valid_key(key: object) -> bool:
    try:
        validate_key(key)  # type: ignore[arg-type]
    except InvalidOrderKey:
        return False
    return True


def _increment_integer(value: str) -> Optional[str]:
    head, digits = value[0], list(value[1:])
    carry = True
    for i in range(len(digits) - 1, -1, -1):
        if not carry:
            break
        d = _digit(digits[i]) + 1
        if d == len(DIGITS):
            digits[i] = ZERO
        else:
            digits[i] = DIGITS[d]
            carry = False
    if not carry:
        return head + "".join(digits)
    if head == "Z":
        return "a" + ZERO
    if head == "z":
        return None
    next_head = chr(ord(head) + 1)
    if next_head > "a":
        digits.append(ZERO)
    else:
        digits.pop()
    return next_head + "".join(digits)


def _decrement_integer(value: str) -> Optional[str]:
    head, digits = value[0], list(value[1:])
    borrow = True
    for i in range(len(digits) - 1, -1, -1):
        if not borrow:
            break
        d = _digit(digits[i]) - 1
        if d == -1:
            digits[i] = DIGITS[-1]
        else:
            digits[i] = DIGITS[d]
            borrow = False
    if not borrow:
        return head + "".join(digits)
    if head == "a":
        return "Z" + DIGITS[-1]
    if head == "A":
        return None
    next_head = chr(ord(head) - 1)
    if next_head < "Z":
        digits.append(DIGITS[-1])
    else:
        digits.pop()
    return next_head + "".join(digits)


def _checked(key: str) -> str:
    if len(key) > MAX_KEY_LENGTH:
        raise OrderingExhausted(
            f"key length {len(key)} exceeds the {MAX_KEY_LENGTH} character limit"
        )
    return key


def key_between(lower: Optional[str] = None, upper: Optional[str] = None) -> str:
    """
    Return a key that sorts strictly between ``lower`` and ``upper``.

    ``None`` stands for an open bound: ``key_between(None, upper)`` sorts
    before ``upper`` and ``key_between(lower, None)`` after ``lower``.
    """
    if lower is not None:
        validate_key(lower)
    if upper is not None:
        validate_key(upper)
    if lower is not None and upper is not None and lower >= upper:
        raise InvalidOrderKey(f"{lower!r} >= {upper!r}")

    if lower is None:
        if upper is None:
            return FIRST_KEY
        int_upper = _integer_part(upper)
        frac_upper = upper[len(int_upper) :]
        if int_upper == SMALLEST_INTEGER:
            return _checked(int_upper + _midpoint("", frac_upper))
        if int_upper < upper:
            return int_upper
        decremented = _decrement_integer(int_upper)
        if decremented is None:
            raise OrderingExhausted("cannot allocate a key below the smallest key")
        return decremented

    if upper is None:
        int_lower = _integer_part(lower)
        frac_lower = lower[len(int_lower) :]
        incremented = _increment_integer(int_lower)
        if incremented is None:
            return _checked(int_lower + _midpoint(frac_lower, None))
        return incremented

    int_lower = _integer_part(lower)
    frac_lower = lower[len(int_lower) :]
    int_upper = _integer_part(upper)
    frac_upper = upper[len(int_upper) :]
    if int_lower == int_upper:
        return _checked(int_lower + _midpoint(frac_lower, frac_upper))
    incremented = _increment_integer(int_lower)
    if incremented is None:
        raise OrderingExhausted("cannot increment the integer part any further")
    if incremented < upper:
        return incremented
    return _checked(int_lower + _midpoint(frac_lower, None))


def keys_between(
    lower: Optional[str], upper: Optional[str], count: int
) -> List[str]:
    """Return ``count`` ascending keys, all strictly between the bounds."""
    if count <= 0:
        return []
    if count == 1:
        return [key_between(lower, upper)]
    if upper is None:
        key = key_between(lower, None)
        keys = [key]
        for _ in range(count - 1):
            key = key_between(key, None)
            keys.append(key)
        return keys
    if lower is None:
        key = key_between(None, upper)
        keys = [key]
        for _ in range(count - 1):
            key = key_between(None, key)
            keys.append(key)
        keys.reverse()
        return keys
    half = count // 2
    middle = key_between(lower, upper)
    return (
        keys_between(lower, middle, half)
        + [middle]
        + keys_between(middle, upper, count - half - 1)
    )


__all__ = [
    "FIRST_KEY",
    "MAX_KEY_LENGTH",
    "is_valid_key",
    "key_between",
    "keys_between",
    "validate_key",
]
