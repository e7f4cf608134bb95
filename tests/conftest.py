"""Shared fixtures: the region/sales sheet, fake capabilities, a store."""

from __future__ import annotations

import pytest

from agent.store import InMemoryInsightStore
from config.llm_config import GenerationCapability
from tools.dataset import infer_dataset


REGION_SALES = [
    {"region": "east", "sales": "10"},
    {"region": "east", "sales": "20"},
    {"region": "west", "sales": "5"},
]


class RecordingGenerator:
    """Stands in for an LLM: returns a canned reply or raises."""

    def __init__(self, reply: str = "", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def __call__(self, prompt: str, system_prompt: str) -> str:
        self.calls.append((prompt, system_prompt))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def sales_dataset():
    return infer_dataset(REGION_SALES, name="sales.xlsx", owner_id="user-1")


@pytest.fixture
def store():
    return InMemoryInsightStore()


@pytest.fixture
def make_capability():
    def _make(reply: str = "", error: Exception | None = None):
        generator = RecordingGenerator(reply=reply, error=error)
        capability = GenerationCapability(generate=generator, model="fake-model", provider="fake")
        return capability, generator

    return _make
