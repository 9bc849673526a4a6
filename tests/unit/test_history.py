import pytest

from grounded_qa.agent.history import ConversationHistory


def test_history_keeps_at_most_max_turns_oldest_dropped_first() -> None:
    history = ConversationHistory(max_turns=3)

    for i in range(4):
        history.append_turn(f"q{i}", f"a{i}")

    assert len(history) == 3
    assert [user.content for user, _ in history.turns()] == ["q1", "q2", "q3"]
    assert [m.role for m in history.messages()] == ["user", "assistant"] * 3


def test_truncate_to_smaller_bound_and_clear() -> None:
    history = ConversationHistory(max_turns=5)
    for i in range(5):
        history.append_turn(f"q{i}", f"a{i}")

    history.truncate(2)
    assert [user.content for user, _ in history.turns()] == ["q3", "q4"]

    history.clear()
    assert len(history) == 0
    assert history.messages() == []


def test_invalid_max_turns_rejected() -> None:
    with pytest.raises(ValueError):
        ConversationHistory(max_turns=0)

