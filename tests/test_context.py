"""Tests for context window selection."""

from datetime import datetime, timedelta, timezone
from typing import List, Sequence

import pytest

from chatguard.app.services.context import (
    ContextSelectorSettings,
    ConversationTurn,
    LexicalOverlapScorer,
    RelevanceScorer,
    pick_context,
    tokenize,
    trim_recent_turns,
)

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
OPTIONS = ContextSelectorSettings()


def conversation(*turns) -> List[ConversationTurn]:
    return [
        ConversationTurn(id=str(turn_id), role=role, content=content, created_at=T0 + timedelta(minutes=i))
        for i, (turn_id, role, content) in enumerate(turns)
    ]


def ids(turns: Sequence[ConversationTurn]) -> List[str]:
    return [turn.id for turn in turns]


class TestTokenize:
    def test_lowercases_and_drops_short_words(self):
        assert tokenize("How do I Translate to SPANISH?") == ["translate", "spanish"]

    def test_splits_on_non_alphanumerics(self):
        assert tokenize("e-mail, foo_bar 2026!") == ["mail", "2026"]

    def test_stop_words(self):
        assert tokenize("please translate this", stop_words=frozenset({"please"})) == [
            "translate", "this",
        ]


class TestLexicalOverlapScorer:
    def test_counts_distinct_shared_terms(self):
        scorer = LexicalOverlapScorer()
        scores = scorer.score(
            "translate spanish sentence",
            ["translate translate spanish", "french", "sentence here"],
        )
        assert scores == [2.0, 0.0, 1.0]

    def test_query_without_significant_terms(self):
        assert LexicalOverlapScorer().score("hi", ["hello there"]) == [0.0]


class TestPickContext:
    """Tests for choosing the current turn and its relevant history."""

    def test_overlap_beats_recency(self):
        history = conversation(
            (1, "user", "How do I translate to Spanish?"),
            (2, "assistant", "Use the translate button."),
            (3, "user", "Translation in French is also needed"),
            (4, "assistant", "Sure."),
            (5, "user", "Translate this sentence to Spanish"),
        )

        selection = pick_context(history, "5", options=OPTIONS)

        assert selection.current.id == "5"
        assert ids(selection.context) == ["1"]

    def test_no_overlap_falls_back_to_two_most_recent_in_order(self):
        history = conversation(
            (1, "user", "weather forecast tomorrow"),
            (2, "user", "recipe for pancakes"),
            (3, "assistant", "Here is a recipe."),
            (4, "user", "favourite football team"),
            (5, "user", "hello"),
        )

        selection = pick_context(history, None, options=OPTIONS)

        assert selection.current.id == "5"
        assert ids(selection.context) == ["2", "4"]

    def test_ranked_by_score_then_recency_and_capped(self):
        history = conversation(
            (1, "user", "python asyncio"),
            (2, "user", "python asyncio locks"),
            (3, "user", "python"),
            (4, "user", "python tips"),
            (5, "user", "unrelated question"),
            (6, "user", "python asyncio locks explained"),
        )

        selection = pick_context(history, "6", options=OPTIONS)

        # 2 scores 3, 1 scores 2, then the most recent of the 1-score ties (4)
        assert ids(selection.context) == ["1", "2", "4"]

    def test_candidates_are_user_turns_before_current(self):
        history = conversation(
            (1, "user", "spanish grammar"),
            (2, "assistant", "spanish grammar answer"),
            (3, "user", "spanish verbs"),
            (4, "user", "spanish nouns after"),
        )

        selection = pick_context(history, "3", options=OPTIONS)

        assert selection.current.id == "3"
        assert ids(selection.context) == ["1"]

    def test_unknown_target_uses_latest_user_turn(self):
        history = conversation(
            (1, "user", "first question"),
            (2, "user", "second question"),
            (3, "assistant", "answer"),
        )

        selection = pick_context(history, "missing", options=OPTIONS)

        assert selection.current.id == "2"

    def test_target_must_be_a_user_turn(self):
        history = conversation(
            (1, "user", "first question"),
            (2, "assistant", "answer"),
            (3, "user", "second question"),
        )

        assert pick_context(history, "2", options=OPTIONS).current.id == "3"

    def test_no_user_turns(self):
        history = conversation((1, "assistant", "welcome"))
        selection = pick_context(history, None, options=OPTIONS)

        assert selection.current is None
        assert selection.context == []

    def test_empty_history(self):
        selection = pick_context([], "1", options=OPTIONS)
        assert selection.current is None
        assert selection.context == []

    def test_first_user_turn_has_no_context(self):
        history = conversation((1, "user", "hello there"))
        selection = pick_context(history, "1", options=OPTIONS)

        assert selection.current.id == "1"
        assert selection.context == []

    def test_character_budget_drops_oversized_turns(self):
        history = conversation(
            (1, "user", "spanish " + "x" * 50),
            (2, "user", "spanish " + "y" * 3000),
            (3, "user", "spanish please"),
        )

        selection = pick_context(history, "3", options=ContextSelectorSettings(max_context_chars=100))

        assert ids(selection.context) == ["1"]

    def test_character_budget_keeps_something(self):
        history = conversation(
            (1, "user", "spanish " + "y" * 3000),
            (2, "user", "spanish please"),
        )

        selection = pick_context(history, "2", options=ContextSelectorSettings(max_context_chars=100))

        assert ids(selection.context) == ["1"]

    def test_pluggable_scorer(self):
        class PreferOldest(RelevanceScorer):
            def score(self, query, candidates):
                return [float(len(candidates) - i) for i in range(len(candidates))]

        history = conversation(
            (1, "user", "a"), (2, "user", "b"), (3, "user", "c"), (4, "user", "d"), (5, "user", "e"),
        )

        selection = pick_context(history, "5", scorer=PreferOldest(), options=OPTIONS)

        assert ids(selection.context) == ["1", "2", "3"]

    def test_settings_driven_defaults(self):
        options = ContextSelectorSettings.from_settings()
        assert options.min_token_length == 4
        assert options.max_context_turns == 3
        assert options.fallback_recent_turns == 2


class TestTrimRecentTurns:
    """Tests for the stateless transcript budget."""

    def test_keeps_newest_turns_within_count(self):
        turns = conversation(*[(i, "user", f"message {i}") for i in range(20)])

        kept = trim_recent_turns(turns, max_turns=12, max_chars=4000)

        assert ids(kept) == [str(i) for i in range(8, 20)]

    def test_skips_older_turns_that_overflow(self):
        turns = conversation(
            (1, "user", "a" * 10),
            (2, "assistant", "b" * 50),
            (3, "user", "c" * 30),
        )

        kept = trim_recent_turns(turns, max_chars=45)

        assert ids(kept) == ["1", "3"]

    def test_truncates_only_the_newest_turn(self):
        turns = conversation((1, "user", "old"), (2, "user", "z" * 5000))

        kept = trim_recent_turns(turns, max_chars=4000)

        assert ids(kept) == ["2"]
        assert kept[0].content == "z" * 4000

    def test_drops_blank_turns_and_strips(self):
        turns = conversation((1, "user", "  hi  "), (2, "assistant", "   "))

        kept = trim_recent_turns(turns)

        assert [turn.content for turn in kept] == ["hi"]

    @pytest.mark.parametrize("turns", [[]])
    def test_empty(self, turns):
        assert trim_recent_turns(turns) == []
