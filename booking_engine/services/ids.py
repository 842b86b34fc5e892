from __future__ import annotations

import itertools
import secrets
import string
import uuid
from collections import defaultdict
from typing import DefaultDict, Iterator, Protocol

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_PREFIX = "BK"


class IdGenerator(Protocol):
    def new_id(self, prefix: str) -> str:
        """Return a unique record identifier for ``prefix`` (``lock``, ``booking`` ...)."""

    def reference_code(self) -> str:
        """Return a short human-readable booking reference."""


class UuidIdGenerator:
    def new_id(self, prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex}"

    def reference_code(self) -> str:
        suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(8))
        return f"{REFERENCE_PREFIX}{suffix}"


class SequentialIdGenerator:
    """Deterministic identifiers, one counter per prefix."""

    def __init__(self) -> None:
        self._counters: DefaultDict[str, Iterator[int]] = defaultdict(lambda: itertools.count(1))
        self._references = itertools.count(1)

    def new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._counters[prefix]):05d}"

    def reference_code(self) -> str:
        return f"{REFERENCE_PREFIX}{next(self._references):08d}"
