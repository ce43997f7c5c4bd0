"""
Short code generation strategies for the shortlink service.
Uses Strategy Pattern to allow different generation algorithms.
"""

import logging
import random
import string
from abc import ABC, abstractmethod
from typing import Callable, Optional

from shortlink_app.exceptions import CodeSpaceExhausted

logger = logging.getLogger(__name__)


class ShortCodeStrategy(ABC):
    """Abstract base class for short code generation strategies"""

    @abstractmethod
    def generate(self, exists: Callable[[str], bool]) -> str:
        """
        Generate a short code.

        Args:
            exists: Callback telling whether a code is already taken by a live link

        Returns:
            A short code that was free at the time of the check
        """
        pass


class RandomShortCodeStrategy(ShortCodeStrategy):
    """
    Random generation strategy.
    Draws a fixed-length string from the 62-symbol alphanumeric alphabet and
    checks the store for uniqueness, retrying with a fresh draw on collision.

    Nothing is reserved: two callers may draw the same free code, in which
    case the store's unique index rejects the second insert and the caller
    retries.
    """

    ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

    def __init__(
        self,
        length: int = 6,
        max_retries: int = 10,
        rng: Optional[random.Random] = None
    ):
        self.length = length
        self.max_retries = max_retries
        self.rng = rng or random.SystemRandom()

    def generate(self, exists: Callable[[str], bool]) -> str:
        """Generate random short code with collision checking"""
        for attempt in range(self.max_retries):
            short_code = self._generate_random_string()

            if not exists(short_code):
                return short_code

            logger.debug("Short code collision on attempt %d: %s", attempt + 1, short_code)

        # A healthy 62^6 space essentially never gets here
        logger.error(
            "Could not generate unique short code after %d attempts", self.max_retries
        )
        raise CodeSpaceExhausted(
            f"Could not generate unique short code after {self.max_retries} attempts"
        )

    def _generate_random_string(self) -> str:
        """Generate a random string of specified length"""
        return ''.join(self.rng.choice(self.ALPHABET) for _ in range(self.length))
