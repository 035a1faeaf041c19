"""Answer normalization, synonym expansion and rule-based match evaluation.

This is the single implementation used by live scoring and by the
stress-test harness. Nothing here holds state between calls.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger("playops.scoring")


# Answers shorter than this (after normalization) only match exactly
SHORT_ANSWER_LEN = 4
# Tokens of this length or less are treated as noise
MIN_TOKEN_LEN = 2

HIGH_OVERLAP_PCT = 80.0
SEMANTIC_OVERLAP_PCT = 70.0
SEMANTIC_ONLY_OVERLAP_PCT = 50.0

_PUNCT_RE = re.compile(r"[.,!?;:'\"‘’“”`(){}\[\]]")
_WS_RE = re.compile(r"\s+")
_ARTICLE_RE = re.compile(r"^(the|a|an)\s+")
_DELIM_RE = re.compile(r"[;,|]")


# Business-concept synonym clusters. Order matters: lookups walk the table
# top to bottom. Clusters must stay disjoint.
SYNONYM_GROUPS: Tuple[Tuple[str, ...], ...] = (
    ('increase', 'improve', 'enhance', 'boost', 'raise', 'grow', 'elevate'),
    ('decrease', 'reduce', 'lower', 'minimize', 'cut', 'lessen', 'diminish'),
    ('customer', 'client', 'user', 'consumer', 'patron'),
    ('satisfaction', 'happiness', 'contentment', 'fulfillment'),
    ('revenue', 'income', 'earnings', 'sales', 'proceeds'),
    ('cost', 'expense', 'expenditure', 'spending'),
    ('efficiency', 'productivity', 'performance', 'effectiveness'),
    ('quality', 'excellence', 'standard', 'grade'),
    ('retention', 'loyalty', 'keeping', 'maintaining'),
)


class MatchReason(str, Enum):
    """Which rule decided a comparison."""
    EXACT = "exact"
    SHORT_EXACT_REQUIRED = "short_exact_required"
    HIGH_OVERLAP = "high_overlap"
    SEMANTIC_OVERLAP = "semantic_overlap"
    NO_MATCH = "no_match"


@dataclass(frozen=True)
class MatchVerdict:
    is_match: bool
    reason: MatchReason
    detail: str
    overlap_pct: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'is_match': self.is_match,
            'reason': self.reason.value,
            'detail': self.detail,
            'overlap_pct': self.overlap_pct,
        }


def normalize(text) -> str:
    """
    Canonicalize free text for comparison.

    Lower-cases, strips punctuation, collapses whitespace and drops leading
    articles. Total: None and empty input give "". Idempotent.
    """
    if text is None:
        return ''
    if not isinstance(text, str):
        text = str(text)
    if not text:
        return ''
    s = _PUNCT_RE.sub('', text.lower())
    s = _WS_RE.sub(' ', s).strip()
    while True:
        stripped = _ARTICLE_RE.sub('', s, count=1)
        if stripped == s:
            break
        s = stripped
    return s


def tokenize(normalized: str) -> List[str]:
    """Substantial words of a normalized string (length > 2)."""
    if not normalized:
        return []
    return [w for w in normalized.split(' ') if len(w) > MIN_TOKEN_LEN]


def expand_answers(candidates: Optional[Iterable[str]]) -> List[str]:
    """
    Split delimiter-joined synonym strings into individual answers.

    "revenue; income | sales" -> ["revenue", "income", "sales"].
    Order and duplicates are preserved; empty parts are dropped.
    """
    expanded: List[str] = []
    if not candidates:
        return expanded
    for cand in candidates:
        if not cand:
            continue
        parts = [p.strip() for p in _DELIM_RE.split(str(cand))]
        expanded.extend(p for p in parts if p)
    return expanded


def shared_groups(user_tokens: Sequence[str], candidate_tokens: Sequence[str]) -> List[int]:
    """Indices of synonym groups touched by both token lists, in table order."""
    user_set = set(user_tokens)
    cand_set = set(candidate_tokens)
    hits = []
    for i, group in enumerate(SYNONYM_GROUPS):
        if user_set.intersection(group) and cand_set.intersection(group):
            hits.append(i)
    return hits


def is_match(user_normalized: str, candidate_normalized: str) -> MatchVerdict:
    """
    Decide whether a normalized user answer satisfies one acceptable answer.

    Rules run in a fixed order and the first applicable one wins:
        1. either side empty          -> no match
        2. equal strings              -> exact
        3. candidate < 4 chars        -> no match (exact required)
        4. no substantial tokens      -> no match
        5/6. overlap >= 80%           -> high overlap
        7. 70% <= overlap < 80% and a shared synonym group -> semantic
        7b. strong synonym agreement  -> semantic
        8. otherwise                  -> no match
    """
    if not user_normalized or not user_normalized.strip():
        return MatchVerdict(False, MatchReason.NO_MATCH, 'empty user answer')
    if not candidate_normalized or not candidate_normalized.strip():
        return MatchVerdict(False, MatchReason.NO_MATCH, 'empty acceptable answer')

    if user_normalized == candidate_normalized:
        return MatchVerdict(True, MatchReason.EXACT, 'exact match', 100.0)

    if len(candidate_normalized) < SHORT_ANSWER_LEN:
        return MatchVerdict(
            False, MatchReason.SHORT_EXACT_REQUIRED,
            'short answer requires exact match',
        )

    cand_tokens = tokenize(candidate_normalized)
    user_tokens = tokenize(user_normalized)
    if not cand_tokens:
        return MatchVerdict(
            False, MatchReason.NO_MATCH,
            'no substantial words in acceptable answer',
        )
    if not user_tokens:
        return MatchVerdict(
            False, MatchReason.NO_MATCH,
            'no substantial words in user answer',
        )

    user_set = set(user_tokens)
    common = sum(1 for w in cand_tokens if w in user_set)
    overlap = common / len(cand_tokens) * 100.0
    logger.debug("word overlap %d/%d (%.0f%%)", common, len(cand_tokens), overlap)

    if overlap >= HIGH_OVERLAP_PCT:
        return MatchVerdict(
            True, MatchReason.HIGH_OVERLAP,
            f'high word overlap: {round(overlap)}%', overlap,
        )

    groups = shared_groups(user_tokens, cand_tokens)
    if groups and overlap >= SEMANTIC_OVERLAP_PCT:
        return MatchVerdict(
            True, MatchReason.SEMANTIC_OVERLAP,
            f'semantic match with {round(overlap)}% overlap', overlap,
        )

    if groups:
        n = len(groups)
        if len(cand_tokens) <= 3 and n >= 2:
            return MatchVerdict(
                True, MatchReason.SEMANTIC_OVERLAP,
                f'strong semantic match ({n} synonym groups)', overlap,
            )
        if len(cand_tokens) > 3 and (n >= 2 or overlap >= SEMANTIC_ONLY_OVERLAP_PCT):
            return MatchVerdict(
                True, MatchReason.SEMANTIC_OVERLAP,
                f'semantic match ({n} groups, {round(overlap)}% overlap)', overlap,
            )

    return MatchVerdict(
        False, MatchReason.NO_MATCH,
        f'insufficient match: {round(overlap)}% overlap', overlap,
    )
