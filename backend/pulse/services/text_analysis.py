"""
Free-text analysis for standup entries.

Provides:
- Task extraction and counting from "yesterday"/"today" sections
- Blocker detection that ignores "none" / "n/a" placeholders
- A pluggable recurring-keyword strategy used by both the metrics calculator
  and the repeated-blockers detector
"""
import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from typing import Callable, List, Optional, Sequence

from pulse.constants import get_constants
from pulse.core.resilience import with_fallback

logger = logging.getLogger(__name__)

_text_config = get_constants().text
_TASK_LINE = re.compile(_text_config.TASK_LINE_PATTERN)
_NON_WORD = re.compile(r"[^\w\s]")

TaskExtractor = Callable[[str], List[str]]


# =============================================================================
# Tasks
# =============================================================================

@with_fallback(fallback_value=[])
def extract_tasks(text: Optional[str]) -> List[str]:
    """
    Split free text into task strings using bullet or number markers.

    Returns an empty list for blank input or text without markers.

    Example:
        >>> extract_tasks("- fix login\\n2. review PR")
        ['fix login', 'review PR']
    """
    if not text or not text.strip():
        return []
    tasks = []
    for line in text.splitlines():
        match = _TASK_LINE.match(line)
        if match:
            tasks.append(match.group(1).strip())
    return tasks


def count_tasks(text: Optional[str], extractor: TaskExtractor = extract_tasks) -> int:
    """Tasks in one section: extracted count, or 1 for non-empty text without markers."""
    if not text or not text.strip():
        return 0
    try:
        tasks = extractor(text) or []
    except Exception as e:
        logger.warning(f"Task extractor failed, counting section as one task: {e}")
        tasks = []
    return len(tasks) or 1


def count_entry_tasks(entry, extractor: TaskExtractor = extract_tasks) -> int:
    return count_tasks(entry.yesterday, extractor) + count_tasks(entry.today, extractor)


# =============================================================================
# Blockers
# =============================================================================

def has_blocker(text: Optional[str]) -> bool:
    """True for real blocker text; blank, "none" and "n/a" are not blockers."""
    if not text:
        return False
    stripped = text.strip()
    return bool(stripped) and stripped.lower() not in _text_config.BLOCKER_SENTINELS


def sentiment_text(entry) -> str:
    """Text scored for sentiment: the three report sections joined."""
    return f"{entry.yesterday or ''} {entry.today or ''} {entry.blockers or ''}".strip()


# =============================================================================
# Recurring keywords
# =============================================================================

class RecurringKeywordStrategy(ABC):
    """Finds themes shared across several blocker texts."""

    @abstractmethod
    def find(self, texts: Sequence[str]) -> List[str]:
        """Return recurring keywords, most significant first."""


class WordFrequencyStrategy(RecurringKeywordStrategy):
    """
    Word-frequency heuristic.

    Lower-cases and strips punctuation, keeps words longer than 4 characters,
    keeps words found in at least `min_entries` distinct texts, and returns the
    top `top_n` ordered by distinct-text count, then total count, then alphabetically.
    """

    def __init__(
        self,
        min_length: int = _text_config.KEYWORD_MIN_LENGTH,
        min_entries: int = _text_config.KEYWORD_MIN_ENTRIES,
        top_n: int = _text_config.KEYWORD_TOP_N,
    ):
        self.min_length = min_length
        self.min_entries = min_entries
        self.top_n = top_n

    def _words(self, text: str) -> List[str]:
        cleaned = _NON_WORD.sub(" ", text.lower())
        return [w for w in cleaned.split() if len(w) >= self.min_length]

    def find(self, texts: Sequence[str]) -> List[str]:
        entry_counts: Counter = Counter()
        total_counts: Counter = Counter()
        for text in texts:
            if not has_blocker(text):
                continue
            words = self._words(text)
            total_counts.update(words)
            entry_counts.update(set(words))

        recurring = [w for w, n in entry_counts.items() if n >= self.min_entries]
        recurring.sort(key=lambda w: (-entry_counts[w], -total_counts[w], w))
        return recurring[:self.top_n]


_default_strategy: RecurringKeywordStrategy = WordFrequencyStrategy()


def get_keyword_strategy() -> RecurringKeywordStrategy:
    return _default_strategy
