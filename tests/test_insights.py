import json
from datetime import datetime, timedelta

import pytest

from agent.graph import InsightGenerationError, InsightOrchestrator
from agent.nodes import (
    NO_SUMMARY,
    build_insight_prompt,
    build_mock_insight,
    normalize_insight,
    parse_insight_response,
)
from agent.store import InMemoryInsightStore, InsightNotFoundError
from config.llm_config import MOCK_MODEL_NAME, GenerationCapability, LLMConnectionError
from tools.dataset import Dataset, infer_dataset
from tools.statistics import summarize_dataset


LLM_REPLY = {
    "summary": "Sales are concentrated in the east.",
    "keyFindings": [{"title": "East", "value": "30", "description": "Two orders"}],
    "trends": ["East leads"],
    "recommendations": ["Invest in west"],
}


# =============================================================================
# MOCK PATH
# =============================================================================

def test_unavailable_capability_uses_statistics(sales_dataset, store):
    orchestrator = InsightOrchestrator(GenerationCapability.unavailable(), store)
    insight = orchestrator.generate("user-1", sales_dataset)

    assert insight["userId"] == "user-1"
    assert insight["fileId"] == sales_dataset.id
    assert insight["sourceModel"] == MOCK_MODEL_NAME
    assert insight["generatedAt"]
    assert insight["keyFindings"] == [{
        "title": "sales",
        "value": "Avg: 11.67",
        "description": "Range from 5 to 20 across 3 data points",
    }]
    assert insight["summary"].startswith("Analysis of sales.xlsx: This dataset contains 3 rows with 2 columns.")
    assert len(insight["trends"]) == 3
    assert len(insight["recommendations"]) == 4


def test_mock_findings_are_capped():
    dataset = infer_dataset([{f"c{i}": i for i in range(5)}])
    mock = build_mock_insight(summarize_dataset(dataset))
    assert [f["title"] for f in mock["keyFindings"]] == ["c0", "c1", "c2"]
    assert "Compare numeric fields" in mock["recommendations"][2]


def test_mock_without_numeric_columns():
    dataset = infer_dataset([{"name": "a"}, {"name": "b"}], name="names.csv")
    mock = build_mock_insight(summarize_dataset(dataset))

    assert mock["keyFindings"] == [{
        "title": "Data Overview",
        "value": "2 records",
        "description": "Dataset contains 1 columns with comprehensive data points",
    }]
    assert "0 numeric fields" in mock["summary"]


def test_default_orchestrator_is_mock(sales_dataset):
    insight = InsightOrchestrator().generate("user-1", sales_dataset)
    assert insight["sourceModel"] == MOCK_MODEL_NAME


# =============================================================================
# EXTERNAL PATH
# =============================================================================

def test_structured_reply_is_stored(sales_dataset, store, make_capability):
    capability, generator = make_capability(reply=json.dumps(LLM_REPLY))
    state = InsightOrchestrator(capability, store).run("user-1", sales_dataset)

    insight = state["insight"]
    assert state["source"] == "llm"
    assert state["created"] is True
    assert insight["summary"] == LLM_REPLY["summary"]
    assert insight["keyFindings"] == LLM_REPLY["keyFindings"]
    assert insight["trends"] == ["East leads"]
    assert insight["recommendations"] == ["Invest in west"]
    assert insight["sourceModel"] == "fake-model"

    prompt, system_prompt = generator.calls[0]
    assert prompt.startswith("Analyze this dataset and provide insights:")
    assert '"filename": "sales.xlsx"' in prompt
    assert "JSON" in system_prompt


def test_code_fenced_reply_is_parsed(sales_dataset, store, make_capability):
    reply = "```json\n" + json.dumps(LLM_REPLY) + "\n```"
    capability, _ = make_capability(reply=reply)
    insight = InsightOrchestrator(capability, store).generate("user-1", sales_dataset)
    assert insight["summary"] == LLM_REPLY["summary"]


def test_unstructured_reply_becomes_summary(sales_dataset, store, make_capability):
    capability, _ = make_capability(reply="Sales look healthy overall.")
    state = InsightOrchestrator(capability, store).run("user-1", sales_dataset)

    insight = state["insight"]
    assert state["source"] == "llm_unparsed"
    assert insight["summary"] == "Sales look healthy overall."
    assert insight["keyFindings"] == []
    assert insight["trends"] == []
    assert insight["recommendations"] == []
    assert insight["sourceModel"] == "fake-model"


def test_partial_reply_gets_defaults(sales_dataset, store, make_capability):
    capability, _ = make_capability(reply=json.dumps({"summary": "", "trends": ["up"]}))
    insight = InsightOrchestrator(capability, store).generate("user-1", sales_dataset)

    assert insight["summary"] == NO_SUMMARY
    assert insight["keyFindings"] == []
    assert insight["trends"] == ["up"]
    assert insight["recommendations"] == []


def test_failed_call_falls_back_to_mock(sales_dataset, store, make_capability):
    capability, generator = make_capability(error=LLMConnectionError("quota exceeded"))
    state = InsightOrchestrator(capability, store).run("user-1", sales_dataset)

    insight = state["insight"]
    assert len(generator.calls) == 1
    assert state["source"] == "mock"
    assert insight["sourceModel"] == MOCK_MODEL_NAME
    assert insight["keyFindings"][0]["title"] == "sales"
    assert any("quota exceeded" in w for w in state["warnings"])


def test_any_exception_falls_back(sales_dataset, store, make_capability):
    capability, _ = make_capability(error=RuntimeError("boom"))
    insight = InsightOrchestrator(capability, store).generate("user-1", sales_dataset)
    assert insight["sourceModel"] == MOCK_MODEL_NAME


# =============================================================================
# LIFECYCLE
# =============================================================================

def test_second_request_returns_stored_insight(sales_dataset, store, make_capability):
    capability, generator = make_capability(reply=json.dumps(LLM_REPLY))
    orchestrator = InsightOrchestrator(capability, store)

    first = orchestrator.run("user-1", sales_dataset)
    second = orchestrator.run("user-1", sales_dataset)

    assert first["created"] is True
    assert second["created"] is False
    assert second["source"] == "existing"
    assert second["insight"] == first["insight"]
    assert len(generator.calls) == 1
    assert len(store) == 1


def test_insights_are_per_user(sales_dataset, store):
    orchestrator = InsightOrchestrator(store=store)
    a = orchestrator.generate("user-a", sales_dataset)
    b = orchestrator.generate("user-b", sales_dataset)

    assert a["id"] != b["id"]
    assert len(store) == 2
    assert orchestrator.list_insights("user-a") == [a]


def test_dataset_gains_back_reference(sales_dataset):
    orchestrator = InsightOrchestrator()
    assert sales_dataset.insight_id is None
    insight = orchestrator.generate("user-1", sales_dataset)
    assert sales_dataset.insight_id == insight["id"]


def test_get_before_generation_raises(sales_dataset):
    orchestrator = InsightOrchestrator()
    with pytest.raises(InsightNotFoundError, match="No insights found for this file"):
        orchestrator.get("user-1", sales_dataset.id)

    insight = orchestrator.generate("user-1", sales_dataset)
    assert orchestrator.get("user-1", sales_dataset.id) == insight


class RacingStore(InMemoryInsightStore):
    """A concurrent request stores its insight between our check and insert."""

    def __init__(self, winner: dict):
        super().__init__()
        self.winner = winner
        self.lookups = 0

    def find(self, user_id, dataset_id):
        self.lookups += 1
        if self.lookups == 1:
            self.insert_if_absent(self.winner)
            return None
        return super().find(user_id, dataset_id)


def test_concurrent_duplicate_resolves_to_winner(sales_dataset, make_capability):
    winner = {
        "id": "winner",
        "userId": "user-1",
        "fileId": sales_dataset.id,
        "summary": "first",
        "keyFindings": [],
        "trends": [],
        "recommendations": [],
        "sourceModel": "other",
        "generatedAt": "2024-01-01T00:00:00",
    }
    store = RacingStore(winner)
    capability, _ = make_capability(reply=json.dumps(LLM_REPLY))

    state = InsightOrchestrator(capability, store).run("user-1", sales_dataset)

    assert state["insight"]["id"] == "winner"
    assert state["created"] is False
    assert len(store) == 1


def test_malformed_dataset_raises_and_stores_nothing(store):
    broken = Dataset(name="broken.xlsx", headers=["a"], records=["not a record"])
    orchestrator = InsightOrchestrator(store=store)

    with pytest.raises(InsightGenerationError) as exc_info:
        orchestrator.generate("user-1", broken)

    assert exc_info.value.error_type == "DATA_INVALID"
    assert len(store) == 0
    assert broken.insight_id is None


def test_progress_events(sales_dataset):
    events = []
    InsightOrchestrator().run("user-1", sales_dataset, progress_callback=events.append)

    nodes = [e["node"] for e in events]
    assert nodes[0] == "check_existing"
    assert "summarize_data" in nodes
    assert events[-1] == {"node": "persist_insight", "status": "complete", "message": "Insights saved"}


# =============================================================================
# PARSING & NORMALIZATION
# =============================================================================

def test_parse_rejects_non_object_json():
    parsed, ok = parse_insight_response("[1, 2]")
    assert ok is False
    assert parsed["summary"] == "[1, 2]"


def test_parse_empty_reply():
    parsed, ok = parse_insight_response(None)
    assert ok is False
    assert normalize_insight(parsed)["summary"] == NO_SUMMARY


def test_normalize_coerces_findings_and_lists():
    normalized = normalize_insight({
        "summary": "ok",
        "keyFindings": [{"title": "t", "value": 3}, "loose", 7],
        "trends": "single trend",
        "recommendations": None,
    })
    assert normalized["keyFindings"] == [
        {"title": "t", "value": "3", "description": ""},
        {"title": "loose", "value": "", "description": ""},
    ]
    assert normalized["trends"] == ["single trend"]
    assert normalized["recommendations"] == []


def test_prompt_embeds_summary(sales_dataset):
    summary = summarize_dataset(sales_dataset)
    system_prompt, prompt = build_insight_prompt(summary)
    assert json.dumps(summary, indent=2) in prompt
    assert prompt.endswith("recommendations (array of strings)")
    assert system_prompt.startswith("You are a data analyst expert.")


def test_run_links_dataset_and_stamps_utc(sales_dataset):
    state = InsightOrchestrator().run("user-1", sales_dataset)

    assert sales_dataset.insight_id == state["insight"]["id"]
    generated_at = datetime.fromisoformat(state["insight"]["generatedAt"])
    assert generated_at.utcoffset() == timedelta(0)
