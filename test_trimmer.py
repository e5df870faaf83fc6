import random

import pytest

from session import Message
from session import Role
from trimmer import BudgetExceeded
from trimmer import trim


def count(text):
    # one token per character keeps the arithmetic obvious
    return len(text)


def contents(messages):
    return [m.content for m in messages]


def test_drops_older_unpinned_message():
    history = [Message("AA", pin=True), Message("BBBBB"), Message("CCC", Role.ASSISTANT)]
    assert contents(trim(history, "", 0, 6, count)) == ["AA", "CCC"]


def test_everything_fits():
    history = [Message("AA"), Message("BB"), Message("CC")]
    assert trim(history, "DD", 2, 10, count) == history


def test_boundary_is_inclusive():
    assert contents(trim([Message("AAAAA")], "", 0, 5, count)) == ["AAAAA"]
    assert trim([Message("AAAAA")], "", 0, 4, count) == []


def test_new_content_and_overhead_are_reserved():
    history = [Message("AAA"), Message("BBB")]
    assert contents(trim(history, "NN", 2, 8, count)) == ["BBB"]
    assert contents(trim(history, "NN", 0, 8, count)) == ["AAA", "BBB"]


def framed(message):
    return f"{message.role.value}: {message.content}"


def test_messages_are_counted_as_rendered():
    history = [Message("AA", pin=True), Message("BB"), Message("CC", Role.ASSISTANT)]
    # "human: AA" 9, "assistant: CC" 13, "human: BB" 9
    assert trim(history, "", 0, 22, count) == history
    assert contents(trim(history, "", 0, 22, count, framed)) == ["AA", "CC"]
    with pytest.raises(BudgetExceeded):
        trim(history, "", 0, 8, count, framed)


def test_smaller_older_message_is_still_considered():
    history = [Message("A"), Message("BBBBBBB"), Message("CC")]
    assert contents(trim(history, "", 0, 4, count)) == ["A", "CC"]


def test_pinned_older_message_is_kept_within_budget():
    history = [Message("PPPPP", pin=True), Message("BBB")]
    # BBB would fit alone, but the pinned message is reserved first
    assert contents(trim(history, "", 0, 6, count)) == ["PPPPP"]


def test_empty_history():
    assert trim([], "hello", 0, 5, count) == []
    with pytest.raises(BudgetExceeded):
        trim([], "hello", 1, 5, count)


def test_pinned_alone_exceeds_budget():
    with pytest.raises(BudgetExceeded) as exc_info:
        trim([Message("PPPPP", pin=True)], "", 0, 1, count)
    assert exc_info.value.pinned == 5
    assert exc_info.value.budget == 1
    assert "unpin" in str(exc_info.value)


def test_all_pinned_is_all_or_nothing():
    history = [Message("AA", pin=True), Message("BB", pin=True)]
    assert trim(history, "", 0, 4, count) == history
    with pytest.raises(BudgetExceeded):
        trim(history, "", 0, 3, count)


def test_history_is_not_modified():
    history = [Message("AAAA"), Message("BB", pin=True)]
    snapshot = list(history)
    trim(history, "", 0, 3, count)
    assert history == snapshot


@pytest.mark.parametrize("budget, overhead", [(0, 0), (-1, 0), (10, -1)])
def test_invalid_arguments(budget, overhead):
    with pytest.raises(ValueError):
        trim([], "", overhead, budget, count)


def test_random_histories_keep_invariants():
    rng = random.Random(1234)
    for _ in range(500):
        history = [Message("x" * rng.randint(0, 8), pin=rng.random() < 0.2) for _ in range(rng.randint(0, 12))]
        new_content = "y" * rng.randint(0, 4)
        overhead = rng.randint(0, 4)
        budget = rng.randint(1, 40)
        pinned = sum(len(m.content) for m in history if m.pin)
        try:
            window = trim(history, new_content, overhead, budget, count)
        except BudgetExceeded:
            assert overhead + len(new_content) + pinned > budget
            continue

        assert overhead + len(new_content) + sum(len(m.content) for m in window) <= budget
        assert all(m in window for m in history if m.pin)
        # subsequence in original order
        positions = [next(i for i, h in enumerate(history) if h is m) for m in window]
        assert positions == sorted(positions)
