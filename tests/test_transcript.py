from chatpanels.providers.types import (
    ChatMessage,
    ContentFragment,
    IdentifierAssigned,
    ReasoningFragment,
    Terminal,
    UsageSnapshot,
)
from chatpanels.services.transcript import (
    InMemoryTranscriptStore,
    TargetState,
    TargetTranscript,
    Turn,
    apply_delta,
    fold,
)

DELTAS = [
    IdentifierAssigned("m1"),
    ReasoningFragment("Let me "),
    ContentFragment("The "),
    ReasoningFragment("think."),
    UsageSnapshot(5, 1, 6),
    ContentFragment("answer"),
    IdentifierAssigned("m2"),
    UsageSnapshot(5, 2, 7),
    ContentFragment("."),
    Terminal(),
]


def test_fold_concatenates_in_arrival_order():
    turn = fold(Turn(role="assistant", in_progress=True), DELTAS)

    assert turn.content == "The answer."
    assert turn.reasoning == "Let me think."
    assert turn.vendor_message_id == "m2"
    assert turn.in_progress is False


def test_usage_is_last_write_wins():
    turn = fold(Turn(role="assistant"), [UsageSnapshot(5, 1, 6), UsageSnapshot(5, 2, 7)])

    assert turn.usage == UsageSnapshot(5, 2, 7)


def test_fold_is_prefix_stable():
    whole = fold(Turn(role="assistant", in_progress=True, id="t"), DELTAS)

    for k in range(len(DELTAS) + 1):
        split = fold(Turn(role="assistant", in_progress=True, id="t"), DELTAS[:k])
        for delta in DELTAS[k:]:
            apply_delta(split, delta)
        assert split == whole, k


def test_history_skips_in_progress_error_and_empty_turns():
    transcript = TargetTranscript(
        target_id="a",
        turns=[
            Turn(role="user", content="first"),
            Turn(role="assistant", content="reply"),
            Turn(role="user", content="second"),
            Turn(role="assistant", content="Error: boom", error=True),
            Turn(role="user", content="third"),
            Turn(role="assistant", content=""),
            Turn(role="assistant", content="partial", in_progress=True),
        ],
    )

    assert transcript.history() == [
        ChatMessage("user", "first"),
        ChatMessage("assistant", "reply"),
        ChatMessage("user", "second"),
        ChatMessage("user", "third"),
    ]


def test_reset_returns_to_idle():
    transcript = TargetTranscript(
        target_id="a",
        turns=[Turn(role="user", content="x")],
        state=TargetState.SUCCESS,
        conversation_id="conv",
    )

    transcript.reset()

    assert transcript.turns == []
    assert transcript.state is TargetState.IDLE
    assert transcript.conversation_id is None
    assert transcript.last_turn is None


def test_store_saves_snapshots_keyed_by_target():
    store = InMemoryTranscriptStore()
    transcript = TargetTranscript(target_id="a", turns=[Turn(role="user", content="x")])

    store.save(transcript)
    store.save(transcript)
    transcript.turns.append(Turn(role="assistant", content="not saved"))

    loaded = store.load_all()
    assert list(loaded) == ["a"]
    assert len(loaded["a"].turns) == 1
    assert store.save_count == 2
