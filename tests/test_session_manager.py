from fortysix.session.manager import Session, SessionManager


def test_history_stays_bounded_and_pair_aligned() -> None:
    manager = SessionManager(max_turns=3)
    key = "15552223333@s.whatsapp.net"

    for i in range(10):
        manager.append(key, f"question {i}", f"answer {i}")

    messages = manager.get_or_create(key).messages
    assert len(messages) == 6
    assert [m["role"] for m in messages] == ["user", "assistant"] * 3
    assert messages[0]["content"] == "question 7"
    assert messages[-1]["content"] == "answer 9"


def test_history_under_limit_is_untouched() -> None:
    manager = SessionManager(max_turns=10)
    manager.append("a", "hi", "hello")
    manager.append("a", "how are you", "fine")

    assert manager.history("a") == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "how are you"},
        {"role": "assistant", "content": "fine"},
    ]


def test_clear_reports_presence_and_resets() -> None:
    manager = SessionManager(max_turns=5)
    assert manager.clear("nobody") is False

    manager.append("someone", "q", "a")
    assert manager.clear("someone") is True
    assert manager.get("someone") is None

    fresh = manager.get_or_create("someone")
    assert fresh.messages == []


def test_sessions_are_isolated_per_key_and_counted() -> None:
    manager = SessionManager(max_turns=2)
    manager.append("alice", "q1", "a1")
    manager.append("bob", "q2", "a2")
    manager.get_or_create("carol")

    assert manager.count() == 3
    assert manager.history("alice")[0]["content"] == "q1"
    assert manager.history("bob")[0]["content"] == "q2"
    assert manager.history("dave") == []
    assert {s["key"] for s in manager.list_sessions()} == {"alice", "bob", "carol"}


def test_add_exchange_returns_evicted_pairs() -> None:
    session = Session(key="k")
    assert session.add_exchange("q1", "a1", max_turns=1) == 0
    assert session.add_exchange("q2", "a2", max_turns=1) == 1
    assert session.exchange_count == 1
    assert session.get_history() == [
        {"role": "user", "content": "q2"},
        {"role": "assistant", "content": "a2"},
    ]
