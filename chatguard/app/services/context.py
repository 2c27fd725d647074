"""Context window selection for AI chat prompts.

Picks which earlier user turns accompany the current one in the next
provider call. Relevance is a bag-of-words overlap, not semantic search:
prior turns sharing significant words with the current turn win, and when
nothing overlaps the most recent turns are used instead. Scoring sits
behind ``RelevanceScorer`` so another strategy (e.g. embeddings) can be
dropped in without changing ``pick_context``.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, List, Literal, Optional, Sequence

from chatguard.app.core.config import settings

Role = Literal["user", "assistant"]

_WORD_RE = re.compile(r"[a-z0-9]+")


@dataclass(frozen=True)
class ConversationTurn:
    """One stored chat message."""
    id: str
    role: Role
    content: str
    created_at: datetime


@dataclass
class ContextSelection:
    """The turn being answered and the earlier turns chosen to go with it."""
    current: Optional[ConversationTurn] = None
    context: List[ConversationTurn] = field(default_factory=list)


@dataclass(frozen=True)
class ContextSelectorSettings:
    """Tuning knobs for context selection.

    Attributes:
        min_token_length: Shortest word counted as significant
        max_context_turns: Cap on turns chosen by relevance or recency
        fallback_recent_turns: Turns taken by recency when nothing overlaps
        max_context_chars: Character budget for the chosen turns (0 disables it)
        stop_words: Words never counted as significant
    """
    min_token_length: int = 4
    max_context_turns: int = 3
    fallback_recent_turns: int = 2
    max_context_chars: int = 2000
    stop_words: FrozenSet[str] = frozenset()

    @classmethod
    def from_settings(cls) -> "ContextSelectorSettings":
        return cls(
            min_token_length=settings.context_min_token_length,
            max_context_turns=settings.context_max_turns,
            fallback_recent_turns=settings.context_fallback_turns,
            max_context_chars=settings.context_max_chars,
        )


def tokenize(text: str, min_length: int = 4, stop_words: FrozenSet[str] = frozenset()) -> List[str]:
    """Lowercase word tokens of at least ``min_length`` characters."""
    return [
        word for word in _WORD_RE.findall(text.lower())
        if len(word) >= min_length and word not in stop_words
    ]


class RelevanceScorer(ABC):
    """Scores candidate turns against the turn being answered."""

    @abstractmethod
    def score(self, query: str, candidates: Sequence[str]) -> List[float]:
        """Return one score per candidate; 0 means unrelated."""


class LexicalOverlapScorer(RelevanceScorer):
    """Counts the distinct significant words a candidate shares with the query."""

    def __init__(self, min_token_length: int = 4, stop_words: FrozenSet[str] = frozenset()):
        self.min_token_length = min_token_length
        self.stop_words = stop_words

    def _terms(self, text: str) -> FrozenSet[str]:
        return frozenset(tokenize(text, self.min_token_length, self.stop_words))

    def score(self, query: str, candidates: Sequence[str]) -> List[float]:
        query_terms = self._terms(query)
        if not query_terms:
            return [0.0] * len(candidates)
        return [float(len(self._terms(text) & query_terms)) for text in candidates]


def _find_current(
    history: Sequence[ConversationTurn], target_id: Optional[str]
) -> Optional[int]:
    user_indexes = [i for i, turn in enumerate(history) if turn.role == "user"]
    if not user_indexes:
        return None
    if target_id is not None:
        for i in user_indexes:
            if history[i].id == target_id:
                return i
    return user_indexes[-1]


def _apply_char_budget(
    turns: List[ConversationTurn], max_chars: int
) -> List[ConversationTurn]:
    if max_chars <= 0:
        return turns

    kept: List[ConversationTurn] = []
    total = 0
    for turn in turns:
        if total + len(turn.content) > max_chars:
            continue
        kept.append(turn)
        total += len(turn.content)

    return kept or turns


def pick_context(
    history: Sequence[ConversationTurn],
    target_id: Optional[str] = None,
    scorer: Optional[RelevanceScorer] = None,
    options: Optional[ContextSelectorSettings] = None,
) -> ContextSelection:
    """Choose the current turn and its context window.

    Args:
        history: Turns in ascending created_at order
        target_id: Id of the user turn being answered (latest user turn if None
            or not found)
        scorer: Relevance strategy (lexical overlap by default)
        options: Tuning knobs (from settings by default)

    Returns:
        ContextSelection with context turns in chronological order
    """
    options = options or ContextSelectorSettings.from_settings()
    scorer = scorer or LexicalOverlapScorer(options.min_token_length, options.stop_words)

    current_index = _find_current(history, target_id)
    if current_index is None:
        return ContextSelection()

    current = history[current_index]
    candidates = [turn for turn in history[:current_index] if turn.role == "user"]
    if not candidates:
        return ContextSelection(current=current)

    scores = scorer.score(current.content, [turn.content for turn in candidates])
    relevant = [
        (score, index) for index, score in enumerate(scores) if score > 0
    ]

    if relevant:
        # Highest score first, most recent first among equals
        relevant.sort(key=lambda item: (item[0], item[1]), reverse=True)
        chosen = [candidates[index] for _, index in relevant[:options.max_context_turns]]
    else:
        window = min(options.fallback_recent_turns, options.max_context_turns)
        chosen = list(reversed(candidates[-window:])) if window > 0 else []

    chosen = _apply_char_budget(chosen, options.max_context_chars)
    position = {turn.id: i for i, turn in enumerate(candidates)}
    chosen.sort(key=lambda turn: (turn.created_at, position[turn.id]))

    return ContextSelection(current=current, context=chosen)


def trim_recent_turns(
    turns: Sequence[ConversationTurn],
    max_turns: int = 12,
    max_chars: int = 4000,
) -> List[ConversationTurn]:
    """Keep the newest turns that fit a turn and character budget.

    Used for stateless chats where the client sends the whole transcript.
    Only the newest turn is truncated to fit; older turns that would
    overflow the budget are skipped.

    Returns:
        Kept turns in chronological order
    """
    kept: List[ConversationTurn] = []
    total = 0

    for turn in reversed(turns):
        if len(kept) >= max_turns:
            break

        content = turn.content.strip()
        if not content:
            continue
        if not kept and len(content) > max_chars:
            content = content[:max_chars]
        if total + len(content) > max_chars:
            continue

        if content != turn.content:
            turn = ConversationTurn(
                id=turn.id, role=turn.role, content=content, created_at=turn.created_at
            )
        kept.append(turn)
        total += len(content)

    kept.reverse()
    return kept
