from __future__ import annotations

import logging
import math
import re
import unicodedata
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 64
MAX_SUGGESTIONS = 3
GUARD_PREFIX = "col_"
RESERVED_SUFFIX = "_col"

RESERVED_KEYWORDS = frozenset(
    {
        # SQL
        "select", "from", "where", "join", "inner", "outer", "left", "right",
        "on", "and", "or", "not", "null", "true", "false", "case", "when",
        "then", "else", "end", "in", "exists", "between", "like", "is",
        "order", "group", "by", "having", "limit", "offset", "union", "all",
        "distinct", "as", "table", "index", "primary", "foreign", "key",
        "references", "constraint", "unique", "check", "default", "create",
        "alter", "drop", "insert", "update", "delete", "truncate", "grant",
        "revoke", "commit", "rollback", "transaction", "savepoint",
        # Python
        "none", "def", "class", "lambda", "return", "yield", "import",
        "global", "nonlocal", "pass", "raise", "try", "except", "finally",
        "for", "while", "if", "elif", "with", "del", "assert", "async",
        "await", "break", "continue",
    }
)

_SEPARATOR_RUN = re.compile(r"[\W_]+")


class MatchTier(IntEnum):
    exact = 1
    case_insensitive = 2
    normalized = 3


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _token(name: str) -> str:
    token = _SEPARATOR_RUN.sub("_", _strip_diacritics(name).lower()).strip("_")
    if not token:
        return ""
    if token[0].isdigit():
        token = GUARD_PREFIX + token
    if len(token) > MAX_NAME_LENGTH:
        token = token[:MAX_NAME_LENGTH].rstrip("_")
    if token in RESERVED_KEYWORDS:
        token = (token + RESERVED_SUFFIX)[:MAX_NAME_LENGTH]
    return token


def normalize(name: str, ordinal: int = 0) -> str:
    """Fold ``name`` to a snake_case token; total, deterministic, never empty.

    >>> normalize("Café Revenue")
    'cafe_revenue'
    >>> normalize("123")
    'col_123'
    >>> normalize("Select")
    'select_col'
    >>> normalize("???", 4)
    'column_4'
    """

    token = _token(name) if isinstance(name, str) else ""
    return token or f"column_{ordinal}"


def levenshtein(left: str, right: str) -> int:
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)
    if len(left) < len(right):
        left, right = right, left
    previous = list(range(len(right) + 1))
    for i, lch in enumerate(left, start=1):
        current = [i]
        for j, rch in enumerate(right, start=1):
            cost = 0 if lch == rch else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def suggestion_threshold(query: str) -> int:
    return min(5, math.ceil(len(query) * 0.5))


@dataclass(frozen=True)
class MatchResult:
    query: str
    match: Optional[str] = None
    tier: Optional[MatchTier] = None
    suggestions: Tuple[str, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.match is not None


@dataclass(frozen=True)
class ColumnIndex:
    """Three lookup layers over one schema's column names, each keyed to the canonical column."""

    originals: Tuple[str, ...]
    exact: Dict[str, str]
    lowered: Dict[str, str]
    normalized: Dict[str, str]
    tokens: Dict[str, str]
    collisions: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.normalized)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self.exact

    @property
    def canonical_columns(self) -> List[str]:
        return list(self.normalized.values())


def build_index(columns: Iterable[str], log: logging.Logger | None = None) -> ColumnIndex:
    """Index ``columns`` in one pass; a later column that folds onto an earlier token maps to the earlier one."""

    log = log or logger
    originals: List[str] = []
    exact: Dict[str, str] = {}
    lowered: Dict[str, str] = {}
    normalized: Dict[str, str] = {}
    tokens: Dict[str, str] = {}
    collisions: List[Tuple[str, str]] = []

    for ordinal, name in enumerate(columns):
        if not isinstance(name, str) or not name.strip():
            log.warning("Skipping blank column name at position %d", ordinal)
            continue
        if name in exact:
            log.warning("Column %r appears more than once; keeping the first occurrence", name)
            continue
        token = normalize(name, ordinal)
        canonical = normalized.get(token)
        if canonical is None:
            normalized[token] = name
            canonical = name
        else:
            collisions.append((canonical, name))
            log.warning("Column %r normalizes to %r like %r; resolving it to %r", name, token, canonical, canonical)
        originals.append(name)
        tokens[name] = token
        exact[name] = canonical
        lowered.setdefault(name.strip().lower(), canonical)

    return ColumnIndex(
        originals=tuple(originals),
        exact=exact,
        lowered=lowered,
        normalized=normalized,
        tokens=tokens,
        collisions=tuple(collisions),
    )


def suggest(name: str, index: ColumnIndex, limit: int = MAX_SUGGESTIONS) -> Tuple[str, ...]:
    query = name.strip().lower()
    if not query:
        return ()
    threshold = suggestion_threshold(query)
    ranked: List[Tuple[int, int, str]] = []
    for ordinal, column in enumerate(index.originals):
        distance = levenshtein(query, column.strip().lower())
        if distance <= threshold:
            ranked.append((distance, ordinal, column))
    ranked.sort()
    return tuple(column for _, _, column in ranked[:limit])


def resolve(name: object, index: ColumnIndex) -> MatchResult:
    """Resolve free text to a canonical column (exact, then case/trim, then normalized) or suggest neighbours."""

    if not isinstance(name, str):
        return MatchResult(query=str(name) if name is not None else "")
    hit = index.exact.get(name)
    if hit is not None:
        return MatchResult(query=name, match=hit, tier=MatchTier.exact)
    hit = index.lowered.get(name.strip().lower())
    if hit is not None:
        return MatchResult(query=name, match=hit, tier=MatchTier.case_insensitive)
    token = _token(name)
    if token:
        hit = index.normalized.get(token)
        if hit is not None:
            return MatchResult(query=name, match=hit, tier=MatchTier.normalized)
    return MatchResult(query=name, suggestions=suggest(name, index))


def resolve_many(names: Sequence[object], index: ColumnIndex) -> List[MatchResult]:
    return [resolve(name, index) for name in names]


def duplicate_groups(index: ColumnIndex) -> Dict[str, List[str]]:
    """Canonical column -> every original name that collapses onto it, for tokens shared by two or more columns."""

    groups: Dict[str, List[str]] = {}
    for canonical, duplicate in index.collisions:
        groups.setdefault(canonical, [canonical]).append(duplicate)
    return groups
