"""Review, redaction and publication of stored entries.

Invariants:
    - Review is unshuffled and shows everything, removed or not
    - Publication never shows removed entries or participant names
    - Published order is a permutation of the eligible entries
    - Deleting a reviewed message is the only way an entry becomes removed
"""

import random
import re

from higawari_bot.aggregation import AggregationEngine
from higawari_bot.models import ENTRIES, RoundState, Status
from higawari_bot.outbox import DELIMITER

from tests.helpers import CHALLENGE_CH, MOD_CH, Participant

NUMBERED = re.compile(r"^=+\n(\d+)\. (.*)$", re.S)


async def _submit(intake, who, *parts):
    for line in ("submit",) + parts:
        await intake.handle(who.says(line))


def _published(outbox):
    """(number, content) pairs from the challenge channel."""
    out = []
    for text in outbox.to(CHALLENGE_CH):
        m = NUMBERED.match(text)
        if m:
            out.append((int(m.group(1)), m.group(2)))
    return out


# ==============================================================================
# Review pass
# ==============================================================================


async def test_stop_dumps_entries_then_no_submissions(machine, intake, outbox, alice, texts):
    await machine.handle(">start 2")
    await _submit(intake, alice, "only part one", "skip")
    outbox.clear()

    await machine.handle(">stop")

    assert machine.state.status == Status.STOPPED
    assert outbox.to(MOD_CH) == [
        texts("stopped_mod"),
        texts("answer_title", num=1),
        DELIMITER + "only part one",
        texts("answer_title", num=2),
        texts("no_submissions"),
    ]


async def test_review_keeps_arrival_order(machine, intake, outbox, alice, bob):
    await machine.handle(">start 1")
    await _submit(intake, bob, "from bob")
    await _submit(intake, alice, "from alice")
    outbox.clear()

    await machine.handle(">current")

    assert outbox.to(MOD_CH)[1:] == [DELIMITER + "from bob", DELIMITER + "from alice"]


async def test_stop_records_message_refs(machine, intake, store, outbox, alice):
    await machine.handle(">start 1")
    await _submit(intake, alice, "tracked")
    outbox.clear()

    await machine.handle(">stop")

    posted = [ref for ch, text, ref in outbox.sent if text == DELIMITER + "tracked"]
    entry = store.find_one(ENTRIES, participant_id=alice.pid)
    assert entry["message_refs"] == posted


async def test_current_does_not_record_refs(machine, intake, store, alice):
    await machine.handle(">start 1")
    await _submit(intake, alice, "untracked")

    await machine.handle(">current")

    assert store.find_one(ENTRIES, participant_id=alice.pid).get("message_refs") is None


# ==============================================================================
# Redaction
# ==============================================================================


async def test_deleting_reviewed_message_marks_entry_removed(machine, intake, store, engine, outbox, alice):
    await machine.handle(">start 1")
    await _submit(intake, alice, "regrettable")
    await machine.handle(">stop")
    ref = store.find_one(ENTRIES, participant_id=alice.pid)["message_refs"][0]

    assert await engine.mark_removed(ref) is True
    assert store.find_one(ENTRIES, participant_id=alice.pid)["removed"] is True


async def test_deleting_any_piece_of_a_long_entry_redacts_it(machine, intake, store, engine, outbox, alice, bob):
    long_entry = "y" * 2500
    await machine.handle(">start 1")
    await _submit(intake, alice, long_entry)
    await _submit(intake, bob, "short")
    outbox.clear()
    await machine.handle(">stop")

    pieces = [(text, ref) for ch, text, ref in outbox.sent if ch == MOD_CH and "yyyy" in text]
    assert len(pieces) == 2
    assert pieces[0][0].startswith(DELIMITER + "y")
    assert store.find_one(ENTRIES, participant_id=alice.pid)["message_refs"] == [ref for _, ref in pieces]

    assert await engine.mark_removed(pieces[1][1]) is True
    outbox.clear()
    await machine.handle(">publish")

    published = "".join(outbox.to(CHALLENGE_CH))
    assert "y" * 100 not in published
    assert _published(outbox) == [(1, "short")]


async def test_unknown_deleted_message_is_ignored(machine, intake, store, engine, alice):
    await machine.handle(">start 1")
    await _submit(intake, alice, "fine")
    await machine.handle(">stop")

    assert await engine.mark_removed(424242) is False
    assert store.find_one(ENTRIES, participant_id=alice.pid)["removed"] is False


async def test_removed_entries_stay_in_review(machine, intake, store, engine, outbox, alice):
    await machine.handle(">start 1")
    await _submit(intake, alice, "still visible to mods")
    await machine.handle(">stop")
    await engine.mark_removed(store.find_one(ENTRIES)["message_refs"][0])
    outbox.clear()

    await machine.handle(">current")

    assert DELIMITER + "still visible to mods" in outbox.to(MOD_CH)


async def test_mark_removed_logs_storage_failure(machine, intake, store, engine, backend, alice):
    await machine.handle(">start 1")
    await _submit(intake, alice, "x")
    await machine.handle(">stop")
    backend.fail_saves = True

    assert await engine.mark_removed(store.find_one(ENTRIES)["message_refs"][0]) is False
    assert store.find_one(ENTRIES)["removed"] is False


# ==============================================================================
# Publication pass
# ==============================================================================


async def test_publish_numbers_entries_without_names(machine, intake, outbox, alice, bob, texts):
    await machine.handle(">start 1")
    await _submit(intake, alice, "alpha")
    await _submit(intake, bob, "beta")
    await machine.handle(">stop")
    outbox.clear()

    await machine.handle(">publish")

    published = _published(outbox)
    assert [n for n, _ in published] == [1, 2]
    assert sorted(c for _, c in published) == ["alpha", "beta"]
    for text in outbox.to(CHALLENGE_CH):
        assert "Alice" not in text and "Bob" not in text
    assert outbox.to(CHALLENGE_CH)[:2] == [texts("results"), texts("answer_title", num=1)]
    assert machine.state.status == Status.IDLE


async def test_publish_excludes_removed(machine, intake, store, engine, outbox, alice, bob):
    await machine.handle(">start 1")
    await _submit(intake, alice, "keep me")
    await _submit(intake, bob, "drop me")
    await machine.handle(">stop")
    await engine.mark_removed(store.find_one(ENTRIES, participant_id=bob.pid)["message_refs"][0])
    outbox.clear()

    await machine.handle(">publish")

    assert _published(outbox) == [(1, "keep me")]


async def test_publish_empty_part_gets_notice(machine, intake, outbox, alice, texts):
    await machine.handle(">start 2")
    await _submit(intake, alice, "skip", "second only")
    await machine.handle(">stop")
    outbox.clear()

    await machine.handle(">publish")

    assert outbox.to(CHALLENGE_CH) == [
        texts("results"),
        texts("answer_title", num=1),
        DELIMITER + texts("no_submissions"),
        texts("answer_title", num=2),
        DELIMITER + "1. second only",
    ]


async def test_publish_order_is_a_permutation(store, outbox, texts, intake, machine):
    await machine.handle(">start 1")
    people = [Participant(10 + i, f"P{i}") for i in range(5)]
    for p in people:
        await _submit(intake, p, f"entry {p.pid}")
    state = RoundState(Status.STOPPED, machine.state.round_id, 1)
    eligible = sorted(f"entry {p.pid}" for p in people)

    orders = set()
    engine = AggregationEngine(store, outbox, texts, MOD_CH, CHALLENGE_CH, rng=random.Random(7))
    for _ in range(20):
        outbox.clear()
        await engine.publish(state)
        contents = [c for _, c in _published(outbox)]
        assert sorted(contents) == eligible
        orders.add(tuple(contents))

    assert len(orders) > 1


# ==============================================================================
# Status and echo
# ==============================================================================


def test_status_text_idle_for_non_active(engine, texts):
    assert engine.status_text(RoundState()) == texts("status_idle")
    assert engine.status_text(RoundState(Status.STOPPED, "r", 2)) == texts("status_idle")


async def test_status_text_counts_distinct_submitters(store, engine, texts):
    state = RoundState(Status.ACTIVE, "r1", 2)
    await store.upsert(ENTRIES, {"round_id": "r1", "participant_id": 1, "part": 1}, {"content": "a"})
    await store.upsert(ENTRIES, {"round_id": "r1", "participant_id": 1, "part": 2}, {"content": "b"})
    await store.upsert(ENTRIES, {"round_id": "r1", "participant_id": 2, "part": 2}, {"content": "c"})
    await store.upsert(ENTRIES, {"round_id": "old", "participant_id": 3, "part": 1}, {"content": "d"})

    assert engine.status_text(state) == texts("status_submissions", count=2)


async def test_refresh_status_swallows_errors(engine, outbox):
    outbox.fail_presence = True

    await engine.refresh_status(RoundState())

    assert outbox.presence == []


async def test_echo_lists_entries_in_part_order(store, engine, texts):
    state = RoundState(Status.ACTIVE, "r1", 3)
    await store.upsert(ENTRIES, {"round_id": "r1", "participant_id": 1, "part": 3}, {"content": "third"})
    await store.upsert(ENTRIES, {"round_id": "r1", "participant_id": 1, "part": 1}, {"content": "first"})
    replies = []

    async def reply(text):
        replies.append(text)

    await engine.echo_entries(state, 1, reply)

    assert replies == [
        DELIMITER + texts("reply_title"),
        DELIMITER + texts("reply_title_multipart", part=1),
        DELIMITER + "first",
        DELIMITER + texts("reply_title_multipart", part=3),
        DELIMITER + "third",
    ]
