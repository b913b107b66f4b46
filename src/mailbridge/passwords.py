"""SMTP secret generation.

Secrets are drawn from :class:`secrets.SystemRandom` (the OS CSPRNG). The
shape used for SMTP logins is fixed: 16 characters, at least 5 digits, no
symbols, mixed-case letters allowed, no character repeated.
"""

from __future__ import annotations

import secrets
import string

from mailbridge.errors import RandomnessError

SECRET_LENGTH = 16
SECRET_DIGITS = 5
SECRET_SYMBOLS = 0

LOWER_LETTERS = string.ascii_lowercase
UPPER_LETTERS = string.ascii_uppercase
DIGITS = string.digits
SYMBOLS = "~!@#$%^&*()_+`-={}|[]\\:\"<>?,./"


def _pick(rng: secrets.SystemRandom, alphabet: str, count: int, allow_repeat: bool) -> list[str]:
    if allow_repeat:
        return [rng.choice(alphabet) for _ in range(count)]
    return rng.sample(alphabet, count)


def generate_secret(
    length: int = SECRET_LENGTH,
    num_digits: int = SECRET_DIGITS,
    num_symbols: int = SECRET_SYMBOLS,
    *,
    no_upper: bool = False,
    allow_repeat: bool = False,
) -> str:
    """Return a random secret of ``length`` characters.

    Args:
        length: Total number of characters.
        num_digits: Exact number of digits in the result.
        num_symbols: Exact number of symbols in the result.
        no_upper: Restrict letters to lower case.
        allow_repeat: Allow the same character more than once.

    Raises:
        ValueError: If the parameters cannot be satisfied.
        RandomnessError: If the OS randomness source is unavailable.
    """
    letters = LOWER_LETTERS if no_upper else LOWER_LETTERS + UPPER_LETTERS
    num_letters = length - num_digits - num_symbols

    if length <= 0:
        raise ValueError("length must be positive")
    if num_digits < 0 or num_symbols < 0 or num_letters < 0:
        raise ValueError(f"cannot fit {num_digits} digits and {num_symbols} symbols into {length} characters")
    if not allow_repeat and (num_letters > len(letters) or num_digits > len(DIGITS) or num_symbols > len(SYMBOLS)):
        raise ValueError("not enough unique characters for a secret without repeats")

    try:
        rng = secrets.SystemRandom()
        chars = _pick(rng, letters, num_letters, allow_repeat)
        chars += _pick(rng, DIGITS, num_digits, allow_repeat)
        chars += _pick(rng, SYMBOLS, num_symbols, allow_repeat)
        rng.shuffle(chars)
    except (NotImplementedError, OSError) as exc:
        raise RandomnessError(f"randomness source unavailable: {exc}") from exc

    secret = "".join(chars)
    if len(secret) != length:  # pragma: no cover - guarded by the checks above
        raise RandomnessError("generated secret has unexpected length")
    return secret


__all__ = ["SECRET_DIGITS", "SECRET_LENGTH", "SECRET_SYMBOLS", "generate_secret"]
