"""Running statistics for one sampling run.

A ``SampleRun`` is the whole aggregation state of one invocation. The
``Aggregator`` is its only writer: each completed observation is folded in
once, keyed on the key name, so draws may repeat and arrive in any order.

TTL policy: keys without expiry contribute 0 to a bucket's cumulative TTL,
so average TTL undercounts prefixes holding indefinite keys.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

DEFAULT_PATTERN = re.compile(r"[\s,:.\"]")  # any whitespace, comma, colon, period, quote
LEVEL_SEPARATOR = "~"


@dataclass(frozen=True)
class Observation:
    key: str
    key_type: str
    ttl: int
    size: int


@dataclass
class PrefixBucket:
    level: int
    count: int = 0
    size: int = 0
    ttl: int = 0

    @property
    def avg_size(self) -> float:
        return self.size / self.count if self.count else 0.0

    @property
    def avg_ttl(self) -> float:
        return self.ttl / self.count if self.count else 0.0


@dataclass
class SampleRun:
    sample_size: int
    sampled: int = 0
    seen: Set[str] = field(default_factory=set)
    types: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    prefixes: Dict[str, PrefixBucket] = field(default_factory=dict)
    total_keys: int = 0
    server_info: Dict[str, Any] = field(default_factory=dict)

    # cycle accounting
    completed: int = 0
    draws: int = 0
    duplicates: int = 0
    empty_draws: int = 0
    failed: int = 0

    def buckets(self, level: int, min_count: int = 1) -> List[Tuple[str, PrefixBucket]]:
        """Buckets of one level, largest first, ties by prefix name."""
        selected = [
            (prefix, bucket)
            for prefix, bucket in self.prefixes.items()
            if bucket.level == level and bucket.count >= min_count
        ]
        return sorted(selected, key=lambda kv: (-kv[1].count, kv[0]))


def delimiter_pattern(delimiters: Optional[str] = None) -> re.Pattern:
    """Character class for splitting key names. None keeps the default set."""
    if delimiters is None:
        return DEFAULT_PATTERN
    if not delimiters:
        raise ValueError("at least one key delimiter is required")
    return re.compile("[" + "".join(re.escape(c) for c in delimiters) + "]")


def split_key(key: str, pattern: Optional[re.Pattern] = None) -> List[str]:
    pattern = pattern or DEFAULT_PATTERN
    return [segment for segment in pattern.split(key) if segment]


def derive_prefixes(
    segments: List[str], separator: str = LEVEL_SEPARATOR
) -> List[Tuple[str, int]]:
    prefixes = []
    if len(segments) > 1:
        prefixes.append((segments[0], 1))
    if len(segments) > 2:
        prefixes.append((segments[0] + separator + segments[1], 2))
    return prefixes


class Aggregator:
    def __init__(
        self,
        run: SampleRun,
        delimiters: Optional[str] = None,
        separator: str = LEVEL_SEPARATOR,
    ):
        self.run = run
        self._pattern = delimiter_pattern(delimiters)
        self._separator = separator

    def record(self, observation: Observation) -> bool:
        """Fold one observation into the run.

        Returns False when the key was already recorded and nothing changed.
        """
        run = self.run
        if observation.key in run.seen:
            run.duplicates += 1
            return False
        run.seen.add(observation.key)
        run.sampled += 1
        run.types[observation.key_type] += 1

        segments = split_key(observation.key, self._pattern)
        for prefix, level in derive_prefixes(segments, self._separator):
            bucket = run.prefixes.get(prefix)
            if bucket is None:
                bucket = run.prefixes[prefix] = PrefixBucket(level=level)
            bucket.count += 1
            bucket.size += observation.size
            bucket.ttl += observation.ttl if observation.ttl > 0 else 0
        return True
