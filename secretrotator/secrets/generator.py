"""Secure credential generation for rotated secrets."""

import secrets
import string
from typing import Callable

from ..utils.errors import EntropySourceError, InvalidInputError

CHARS_UPPER = string.ascii_uppercase
CHARS_LOWER = string.ascii_lowercase
CHARS_DIGITS = string.digits
CHARS_SYMBOLS = "~!@#$%^&*()_+`-={}|[]\\:\"<>?,./"

# Consecutive rejected draws tolerated before the source is declared broken.
# With masking every draw is accepted with probability > 1/2.
MAX_REJECTIONS = 128


class CredentialGenerator:
    """Generates random passwords from a fixed character alphabet."""

    def __init__(
        self,
        entropy_source: Callable[[int], bytes] = secrets.token_bytes,
        upper: str = CHARS_UPPER,
        lower: str = CHARS_LOWER,
        digits: str = CHARS_DIGITS,
        symbols: str = CHARS_SYMBOLS,
    ):
        """
        Initialize credential generator.

        Args:
            entropy_source: Callable returning the requested number of
                cryptographically secure random bytes
            upper: Uppercase character class
            lower: Lowercase character class
            digits: Digit character class
            symbols: Symbol class added when symbols are requested
        """
        self.entropy_source = entropy_source
        self.upper = upper
        self.lower = lower
        self.digits = digits
        self.symbols = symbols

    def alphabet(self, include_symbols: bool) -> str:
        """Return the alphabet used for a given symbol setting."""
        alphabet = self.upper + self.lower + self.digits
        if include_symbols:
            alphabet += self.symbols
        return alphabet

    def generate(self, length: int, include_symbols: bool) -> str:
        """
        Generate a password.

        Args:
            length: Number of characters
            include_symbols: Whether to add the symbol class to the alphabet

        Returns:
            str: Generated password

        Raises:
            InvalidInputError: If length is not positive or the alphabet is empty
            EntropySourceError: If the random source fails
        """
        alphabet = self.alphabet(include_symbols)

        if length <= 0 or not alphabet:
            raise InvalidInputError(
                "Empty character set or invalid length",
                details=f"length={length}, alphabet size={len(alphabet)}",
            )

        return "".join(alphabet[self.random_below(len(alphabet))] for _ in range(length))

    def random_below(self, upper_bound: int) -> int:
        """
        Draw a uniform integer in [0, upper_bound) by rejection sampling.

        Draws just enough bytes to cover ``upper_bound - 1``, masks off the
        excess high bits and redraws when the value falls outside the range.

        Raises:
            EntropySourceError: If the random source fails
        """
        if upper_bound <= 0:
            raise InvalidInputError(f"Upper bound must be positive: {upper_bound}")
        if upper_bound == 1:
            return 0

        bits = (upper_bound - 1).bit_length()
        num_bytes = (bits + 7) // 8
        mask = (1 << bits) - 1

        for _ in range(MAX_REJECTIONS):
            value = int.from_bytes(self._read(num_bytes), "big") & mask
            if value < upper_bound:
                return value

        raise EntropySourceError(
            "Random source produced no usable value",
            details=f"{MAX_REJECTIONS} consecutive draws rejected",
        )

    def _read(self, num_bytes: int) -> bytes:
        """Read bytes from the entropy source."""
        try:
            data = self.entropy_source(num_bytes)
        except Exception as e:
            raise EntropySourceError(f"Failed to read secure random bytes: {e}") from e

        if not isinstance(data, (bytes, bytearray)) or len(data) != num_bytes:
            raise EntropySourceError(
                "Secure random source returned short output",
                details=f"requested {num_bytes} bytes",
            )

        return bytes(data)
