"""Sub-scores used by the local reranker.

Each scorer is a pure function over a document (and the query where relevant)
returning a value in [0, 1]:

    semantic   prior similarity signal left in metadata by the vector store
    lexical    keyword relevance of the text to the query
    quality    length, punctuation density and metadata richness heuristic
    freshness  age bucket of updated_at / created_at / timestamp

The simple lexical score is computed per document with a saturating term
frequency and no inverse document frequency. ``bm25_scores`` is the
corpus-aware alternative over the whole candidate set.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Sequence

from langchain_core.documents import Document
from rank_bm25 import BM25Okapi

logger = logging.getLogger(__name__)

NEUTRAL_SEMANTIC = 0.7
NEUTRAL_LEXICAL = 0.5
NEUTRAL_FRESHNESS = 0.7

# BM25 term-frequency saturation
K1 = 1.2
EXACT_QUERY_BONUS = 0.2

PUNCTUATION = set(",.!?;:，。！？；：")

STOP_WORDS = frozenset({
    "的", "了", "是", "在", "我", "有", "和", "就", "不", "人", "都", "一",
    "個", "上", "也", "為", "能", "對", "會",
})

TIMESTAMP_KEYS = ("updated_at", "created_at", "timestamp")

# (max age in days, score), checked in order
FRESHNESS_BUCKETS = (
    (7, 1.0),
    (30, 0.9),
    (90, 0.8),
    (180, 0.7),
    (365, 0.6),
)
STALE_FRESHNESS = 0.5


# ── Keywords ───────────────────────────────────────────────────────

def extract_keywords(query: str) -> List[str]:
    """Whitespace-split query terms longer than one char, minus stop words.

    Order of first appearance is kept and duplicates dropped.
    """
    seen = set()
    keywords = []
    for token in query.split():
        if len(token) <= 1 or token.lower() in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        keywords.append(token)
    return keywords


def count_occurrences(text: str, term: str) -> int:
    """Non-overlapping occurrences of ``term`` in ``text``."""
    if not text or not term:
        return 0
    return text.count(term)


# ── Lexical ────────────────────────────────────────────────────────

def lexical_score(text: str, query: str, keywords: Sequence[str]) -> float:
    """Simplified single-document BM25 proxy.

    Each matched keyword contributes tf*(k1+1)/(tf+k1); the sum is averaged
    over all keywords, +0.2 if the whole query appears verbatim, capped at 1.
    """
    if not keywords:
        return NEUTRAL_LEXICAL

    lower_text = text.lower()
    score = 0.0
    for keyword in keywords:
        tf = count_occurrences(lower_text, keyword.lower())
        if tf > 0:
            score += tf * (K1 + 1) / (tf + K1)
    score /= len(keywords)

    if query.lower() in lower_text:
        score += EXACT_QUERY_BONUS
    return min(1.0, score)


def bm25_scores(texts: Sequence[str], keywords: Sequence[str]) -> List[float]:
    """Okapi BM25 over the candidate set, scaled by the best score to [0, 1]."""
    if not texts:
        return []
    if not keywords:
        return [NEUTRAL_LEXICAL] * len(texts)

    corpus = [t.lower().split() or [""] for t in texts]
    bm = BM25Okapi(corpus)
    raw = [float(v) for v in bm.get_scores([k.lower() for k in keywords])]
    top = max(raw)
    if top <= 0:
        return [0.0] * len(texts)
    return [max(0.0, v) / top for v in raw]


# ── Semantic ───────────────────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def semantic_score(metadata: Mapping[str, Any]) -> float:
    """Prior similarity: 1 - distance, else score, else neutral 0.7."""
    distance = metadata.get("distance")
    if _is_number(distance):
        return min(1.0, max(0.0, 1.0 - float(distance)))
    score = metadata.get("score")
    if _is_number(score):
        return min(1.0, max(0.0, float(score)))
    return NEUTRAL_SEMANTIC


# ── Quality ────────────────────────────────────────────────────────

def quality_score(document: Document) -> float:
    text = document.page_content or ""
    metadata = document.metadata or {}
    score = 0.5

    length = len(text)
    if 200 <= length <= 2000:
        score += 0.2
    elif 2000 < length <= 5000:
        score += 0.1

    if sum(1 for ch in text if ch in PUNCTUATION) > 5:
        score += 0.1

    if metadata.get("title") is not None:
        score += 0.1
    if metadata.get("author") is not None:
        score += 0.05
    if metadata.get("source") is not None:
        score += 0.05

    return min(1.0, score)


# ── Freshness ──────────────────────────────────────────────────────

def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes, ISO-8601 strings and epoch seconds (number or numeric string)."""
    if isinstance(value, datetime):
        return value
    if _is_number(value):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return datetime.fromtimestamp(float(raw), tz=timezone.utc)
        except ValueError:
            pass
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return datetime.fromisoformat(raw)
    return None


def _document_time(metadata: Mapping[str, Any]) -> Optional[Any]:
    for key in TIMESTAMP_KEYS:
        value = metadata.get(key)
        if value is not None:
            return value
    return None


def freshness_score(metadata: Mapping[str, Any], now: Optional[datetime] = None) -> float:
    raw = _document_time(metadata)
    if raw is None:
        logger.debug("No timestamp in metadata, neutral freshness")
        return NEUTRAL_FRESHNESS

    try:
        doc_time = parse_timestamp(raw)
    except (ValueError, OverflowError, OSError):
        doc_time = None
    if doc_time is None:
        logger.warning(f"Unparsable document timestamp {raw!r}, neutral freshness")
        return NEUTRAL_FRESHNESS

    if now is None:
        now = datetime.now(timezone.utc)
    # compare naive with naive and aware with aware
    if doc_time.tzinfo is None and now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    elif doc_time.tzinfo is not None and now.tzinfo is None:
        now = now.astimezone(timezone.utc)

    age_days = (now - doc_time).days
    for max_days, score in FRESHNESS_BUCKETS:
        if age_days <= max_days:
            return score
    return STALE_FRESHNESS
