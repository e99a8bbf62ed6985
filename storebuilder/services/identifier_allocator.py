"""Subdomain allocation for new stores."""

import logging
import random
import re
import string
import time
import uuid
from typing import Awaitable, Callable, Iterator, Optional, Set

logger = logging.getLogger(__name__)

IsTaken = Callable[[str], Awaitable[bool]]


class IdentifierAllocator:
    """
    Allocate globally unique, URL-safe subdomains.

    Candidates are tried in a fixed order and the first one that is neither
    taken in storage nor already handed out by this allocator wins:

    1. the normalized base name
    2. base + "-" + last 6 digits of the current time in milliseconds
    3. base + "-" + random 6 character suffix, up to 10 attempts
    4. base + "-" + first 8 hex characters of a fresh UUID

    Values handed out stay reserved in-process until :meth:`release` is called,
    so two concurrent allocations from the same base never collide even before
    either store has been inserted. The storage unique constraint remains the
    final arbiter across processes.
    """

    MAX_BASE_LENGTH = 20
    MIN_LENGTH = 3
    SHORT_PREFIX = "store-"
    RANDOM_ATTEMPTS = 10
    RANDOM_SUFFIX_LENGTH = 6
    UUID_ATTEMPTS = 5
    SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[random.Random] = None,
        uuid_factory: Optional[Callable[[], uuid.UUID]] = None,
    ):
        self._clock = clock or time.time
        self._rng = rng or random.SystemRandom()
        self._uuid_factory = uuid_factory or uuid.uuid4
        self._reserved: Set[str] = set()

    @classmethod
    def normalize(cls, base_name: str) -> str:
        """
        Turn an arbitrary store name into a subdomain base.

        Examples:
            "Acme Store!" -> "acme-store"
            "AB" -> "store-ab"
        """
        value = (base_name or "").lower()
        value = re.sub(r"[^a-z0-9]+", "-", value)
        value = value.strip("-")
        value = value[:cls.MAX_BASE_LENGTH]
        if len(value) < cls.MIN_LENGTH:
            value = f"{cls.SHORT_PREFIX}{value}".rstrip("-")
        return value

    def _candidates(self, base: str) -> Iterator[str]:
        yield base

        millis = str(int(self._clock() * 1000))
        yield f"{base}-{millis[-6:]}"

        for _ in range(self.RANDOM_ATTEMPTS):
            suffix = "".join(
                self._rng.choice(self.SUFFIX_ALPHABET) for _ in range(self.RANDOM_SUFFIX_LENGTH)
            )
            yield f"{base}-{suffix}"

    def _uuid_candidate(self, base: str) -> str:
        return f"{base}-{self._uuid_factory().hex[:8]}"

    async def allocate(self, base_name: str, is_taken: IsTaken) -> str:
        """
        Allocate a subdomain derived from ``base_name``.

        A candidate is reserved before storage is consulted, so a concurrent
        caller skips it while the check is in flight.

        Args:
            base_name: Human name the subdomain is derived from
            is_taken: Async predicate telling whether storage already holds a value

        Returns:
            str: A subdomain that was free at the instant of return
        """
        base = self.normalize(base_name)

        for candidate in self._candidates(base):
            if await self._try_reserve(candidate, is_taken):
                logger.info(f"Allocated subdomain {candidate} for '{base_name}'")
                return candidate
            logger.debug(f"Subdomain candidate taken: {candidate}")

        for _ in range(self.UUID_ATTEMPTS - 1):
            candidate = self._uuid_candidate(base)
            if await self._try_reserve(candidate, is_taken):
                logger.warning(f"Subdomain ladder exhausted for '{base_name}', using {candidate}")
                return candidate

        candidate = self._uuid_candidate(base)
        self._reserved.add(candidate)
        logger.warning(f"Subdomain ladder exhausted for '{base_name}', using unchecked {candidate}")
        return candidate

    async def _try_reserve(self, candidate: str, is_taken: IsTaken) -> bool:
        if candidate in self._reserved:
            return False
        self._reserved.add(candidate)
        try:
            taken = await is_taken(candidate)
        except BaseException:
            self._reserved.discard(candidate)
            raise
        if taken:
            self._reserved.discard(candidate)
            return False
        return True

    async def suggest(self, base_name: str, is_taken: IsTaken) -> str:
        """Preview the subdomain :meth:`allocate` would hand out, without reserving it."""
        base = self.normalize(base_name)
        for candidate in self._candidates(base):
            if candidate not in self._reserved and not await is_taken(candidate):
                return candidate
        return self._uuid_candidate(base)

    def release(self, subdomain: Optional[str]) -> None:
        """Drop an in-process reservation once storage holds (or rejected) the value."""
        if subdomain:
            self._reserved.discard(subdomain)

    def is_reserved(self, subdomain: str) -> bool:
        return subdomain in self._reserved
