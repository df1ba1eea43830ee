"""Shared fixtures: a file-backed record store, a recording outbox, real texts."""

import random

import pytest

from higawari_bot.aggregation import AggregationEngine
from higawari_bot.i18n import TextResolver
from higawari_bot.intake import SubmissionIntake
from higawari_bot.state_machine import ChallengeStateMachine
from higawari_bot.store import RecordStore

from tests.helpers import CHALLENGE_CH, MOD_CH, FakeOutbox, FlakyBackend, Participant


@pytest.fixture
def texts():
    return TextResolver("en-US")


@pytest.fixture
def outbox():
    return FakeOutbox()


@pytest.fixture
def backend(tmp_path):
    return FlakyBackend(str(tmp_path / "data.json"))


@pytest.fixture
def store(backend):
    return RecordStore(backend)


@pytest.fixture
def engine(store, outbox, texts):
    return AggregationEngine(store, outbox, texts, MOD_CH, CHALLENGE_CH, rng=random.Random(1234))


@pytest.fixture
def machine(store, engine, outbox, texts):
    return ChallengeStateMachine(store, engine, outbox, texts, MOD_CH, CHALLENGE_CH, prefix=">")


@pytest.fixture
def intake(store, machine, engine, texts):
    return SubmissionIntake(store, machine, engine, texts)


@pytest.fixture
def alice():
    return Participant(1, "Alice")


@pytest.fixture
def bob():
    return Participant(2, "Bob")
