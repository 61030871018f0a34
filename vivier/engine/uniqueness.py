"""
Vivier - Uniqueness Guard
=========================

Keeps every accepted combination distinct from:
- combinations already issued (persisted) for the target draw date
- combinations accepted earlier in this session for the same date

Issued keys are fetched once per date. Concurrent fetches for the same
uncached date may both run; the first result stored is the one kept.
A provider that raises leaves the date uncached.
"""

import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, FrozenSet, Hashable, Iterable, Set, Tuple, TypeVar

from loguru import logger

from ..exceptions import GenerationExhausted


T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 180

IssuedProvider = Callable[[date], Iterable[str]]


class IssuedKeyCache:
    """Per-date memo of issued canonical keys (first resolved result wins)"""

    def __init__(self, provider: IssuedProvider):
        self.provider = provider
        self._lock = threading.Lock()
        self._keys: Dict[date, FrozenSet[str]] = {}

    def get(self, target_date: date) -> FrozenSet[str]:
        with self._lock:
            cached = self._keys.get(target_date)
        if cached is not None:
            return cached

        fetched = frozenset(self.provider(target_date))
        with self._lock:
            keys = self._keys.setdefault(target_date, fetched)
        logger.debug(f"Issued keys for {target_date}: {len(keys)}")
        return keys


@dataclass
class GenerationContext:
    """Forbidden keys of one (target date, pool configuration)"""
    target_date: date
    pool_config: Hashable
    issued: FrozenSet[str]
    session: Set[str] = field(default_factory=set)

    @property
    def forbidden(self) -> Set[str]:
        return set(self.issued) | self.session

    def is_forbidden(self, key: str) -> bool:
        return key in self.issued or key in self.session


class UniquenessGuard:
    """
    Bounded retry loop around one generation attempt.

    Session keys are shared by every pool configuration of the same date.
    Context creation and the check-and-add of an accepted key hold one lock,
    so concurrent requests for a date never accept the same key twice.
    """

    def __init__(self, issued_cache: IssuedKeyCache, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.issued_cache = issued_cache
        self.max_attempts = max_attempts
        self._session: Dict[date, Set[str]] = {}
        self._contexts: Dict[Tuple[date, Hashable], GenerationContext] = {}
        self._lock = threading.Lock()

    def context(self, target_date: date, pool_config: Hashable) -> GenerationContext:
        key = (target_date, pool_config)
        issued = self.issued_cache.get(target_date)
        with self._lock:
            if key not in self._contexts:
                self._contexts[key] = GenerationContext(
                    target_date=target_date,
                    pool_config=pool_config,
                    issued=issued,
                    session=self._session.setdefault(target_date, set()),
                )
            return self._contexts[key]

    def run(
        self,
        context: GenerationContext,
        attempt: Callable[[int], T],
        key_of: Callable[[T], str] = lambda result: result.canonical_key,
    ) -> Tuple[T, int]:
        """
        Repeat `attempt` until it yields a combination not yet forbidden.

        Args:
            context: Forbidden keys for the target date
            attempt: Full pipeline run; receives the 1-based attempt number
            key_of: Canonical key of an attempt's result

        Returns:
            (accepted result, attempts used). The key is added to the session.

        Raises:
            GenerationExhausted: If every attempt produced a forbidden key
        """
        for n in range(1, self.max_attempts + 1):
            result = attempt(n)
            key = key_of(result)
            with self._lock:
                if not context.is_forbidden(key):
                    context.session.add(key)
                    return result, n
            logger.debug(f"Attempt {n}: {key} already issued, retrying")

        with self._lock:
            forbidden = len(context.forbidden)
        logger.error(
            f"No unique combination for {context.target_date} after {self.max_attempts} attempts "
            f"({forbidden} forbidden)"
        )
        raise GenerationExhausted(
            f"No unique combination found after {self.max_attempts} attempts; "
            f"widen the vivier or lower the determinism level",
            attempts=self.max_attempts,
            forbidden=forbidden,
        )
