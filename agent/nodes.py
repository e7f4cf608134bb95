# nodes.py — Insight graph node functions
# Steps: check existing → summarize → generate (LLM or mock) → persist
"""
nodes.py — LangGraph Insight Nodes

Each node is a function that takes InsightState and returns state updates.

Node Responsibilities:
- check_existing_node: Return an already-stored insight (no regeneration)
- summarize_data_node: Compute the statistical summary of the dataset
- generate_insight_node: Call the external capability, or fall back to a
  mock insight derived from the statistics
- persist_insight_node: Insert-if-absent into the store
- handle_error_node: Terminal error bookkeeping

External generation failures never surface as errors: they are logged,
added to warnings, and replaced by the mock insight.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from agent.store import DuplicateInsightError
from config.llm_config import MOCK_MODEL_NAME
from tools.coercion import format_number
from tools.statistics import summarize_dataset


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

MAX_MOCK_FINDINGS = 3
NO_SUMMARY = "No summary available"

SYSTEM_PROMPT = (
    "You are a data analyst expert. Analyze the provided dataset and provide "
    "actionable insights, trends, and recommendations in JSON format."
)
RESPONSE_FORMAT = (
    "Provide response in JSON format with keys: summary (string), "
    "keyFindings (array of {title, value, description}), "
    "trends (array of strings), recommendations (array of strings)"
)

CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


# =============================================================================
# PROGRESS HELPERS
# =============================================================================

def _emit_progress(state: dict, node: str, message: str, status: str = "running") -> None:
    """Emit a progress update via the callback if available."""
    callback = state.get("progress_callback")
    if callback and callable(callback):
        try:
            callback({"node": node, "status": status, "message": message})
        except Exception:
            logger.debug("Progress callback failed in %s", node, exc_info=True)


def _create_error_state(
    node: str,
    error_msg: str,
    error_type: str,
    recovery_hint: str,
) -> dict:
    """Create state update for error routing."""
    return {
        "error": error_msg,
        "error_type": error_type,
        "failed_node": node,
        "recovery_hint": recovery_hint,
    }


# =============================================================================
# NODE: CHECK EXISTING
# =============================================================================

def check_existing_node(state: dict) -> dict:
    """
    Look up an insight for (user, dataset).

    Output state updates:
        - phase: "present" with insight/existing_insight set, or "generating"
    """
    node_name = "check_existing"
    _emit_progress(state, node_name, "Checking for existing insights...")

    store = state["store"]
    dataset = state["dataset"]
    user_id = state["user_id"]

    existing = store.find(user_id, dataset.id)
    if existing is not None:
        logger.debug("Insight already generated for dataset %s", dataset.id)
        _emit_progress(state, node_name, "Insights already generated", "complete")
        return {
            "phase": "present",
            "existing_insight": existing,
            "insight": existing,
            "source": "existing",
            "created": False,
        }

    return {"phase": "generating"}


# =============================================================================
# NODE: SUMMARIZE DATA
# =============================================================================

def summarize_data_node(state: dict) -> dict:
    """
    Compute the statistical summary fed to generation.

    Output state updates:
        - data_summary: dict
    On error:
        - error, error_type, failed_node, recovery_hint
    """
    node_name = "summarize_data"
    _emit_progress(state, node_name, "Computing column statistics...")

    dataset = state.get("dataset")
    if dataset is None:
        return _create_error_state(
            node_name,
            "No dataset available for summarization",
            "DATA_MISSING",
            "Please re-upload your file.",
        )

    try:
        summary = summarize_dataset(dataset)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        return _create_error_state(
            node_name,
            f"Dataset summary failed: {str(e)}",
            "DATA_INVALID",
            "The dataset appears to be malformed. Please re-upload it.",
        )

    _emit_progress(state, node_name, "Statistics ready", "complete")
    return {"data_summary": summary}


# =============================================================================
# NODE: GENERATE INSIGHT
# =============================================================================

def generate_insight_node(state: dict) -> dict:
    """
    Produce the insight content.

    With an available capability the summary is sent as JSON text and the
    reply parsed; any failure of the call switches to the mock insight.
    Without a capability the mock insight is used directly.

    Output state updates:
        - parsed_insight, raw_response, source, source_model, warnings
    """
    node_name = "generate_insight"
    summary = state["data_summary"]
    capability = state["capability"]
    warnings = list(state.get("warnings", []))

    if not capability.available:
        _emit_progress(state, node_name, "Generating statistical insights...")
        logger.info("Using mock insights (no generation capability configured)")
        return {
            "parsed_insight": build_mock_insight(summary),
            "source": "mock",
            "source_model": MOCK_MODEL_NAME,
            "warnings": warnings,
        }

    _emit_progress(state, node_name, f"Asking {capability.model} for insights...")
    system_prompt, prompt = build_insight_prompt(summary)

    try:
        raw_response = capability.generate(prompt, system_prompt)
    except Exception as e:
        # Any provider failure degrades to the mock path
        logger.warning("External generation failed, using mock insights: %s", e)
        warnings.append(f"LLM generation failed: {str(e)[:100]}")
        return {
            "parsed_insight": build_mock_insight(summary),
            "source": "mock",
            "source_model": MOCK_MODEL_NAME,
            "warnings": warnings,
        }

    parsed, ok = parse_insight_response(raw_response)
    if not ok:
        logger.warning("External response was not valid JSON; keeping raw text as summary")
        warnings.append("LLM response was not structured JSON")

    _emit_progress(state, node_name, "Insights generated", "complete")
    return {
        "raw_response": raw_response,
        "parsed_insight": parsed,
        "source": "llm" if ok else "llm_unparsed",
        "source_model": capability.model,
        "warnings": warnings,
    }


def build_insight_prompt(data_summary: dict) -> tuple[str, str]:
    """
    Build the (system, user) prompt pair.

    Returns:
        (system_prompt, user_prompt)
    """
    prompt = (
        "Analyze this dataset and provide insights:\n\n"
        f"{json.dumps(data_summary, indent=2, default=str)}\n\n"
        f"{RESPONSE_FORMAT}"
    )
    return SYSTEM_PROMPT, prompt


def parse_insight_response(raw_response: str | None) -> tuple[dict, bool]:
    """
    Parse the model reply as the four-key insight structure.

    Markdown code fences around the JSON are tolerated.

    Returns:
        (insight_dict, parsed_ok). When parsing fails the dict is
        {summary: raw text, keyFindings: [], trends: [], recommendations: []}.
    """
    text = (raw_response or "").strip()
    fenced = CODE_FENCE_PATTERN.match(text)
    candidate = fenced.group(1) if fenced else text

    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        parsed = None

    if not isinstance(parsed, dict):
        return {
            "summary": raw_response or "",
            "keyFindings": [],
            "trends": [],
            "recommendations": [],
        }, False

    return parsed, True


# =============================================================================
# MOCK INSIGHTS
# =============================================================================

def build_mock_insight(data_summary: dict) -> dict:
    """
    Deterministic insight built from the statistical summary.

    Args:
        data_summary: Output of summarize_dataset()

    Returns:
        {summary, keyFindings, trends, recommendations}
    """
    filename = data_summary.get("filename", "dataset")
    row_count = data_summary.get("rowCount", 0)
    headers = data_summary.get("headers", [])
    statistics = data_summary.get("statistics", {})
    numeric_columns = list(statistics.keys())
    column_count = len(headers)

    key_findings = []
    for column in numeric_columns[:MAX_MOCK_FINDINGS]:
        col = statistics[column]
        key_findings.append({
            "title": column,
            "value": f"Avg: {col['avg']:.2f}",
            "description": (
                f"Range from {format_number(col['min'])} to {format_number(col['max'])} "
                f"across {col['count']} data points"
            ),
        })

    if not key_findings:
        key_findings.append({
            "title": "Data Overview",
            "value": f"{row_count} records",
            "description": f"Dataset contains {column_count} columns with comprehensive data points",
        })

    summary = (
        f"Analysis of {filename}: This dataset contains {row_count} rows with "
        f"{column_count} columns. The data shows {len(numeric_columns)} numeric "
        "fields with varying patterns. Key metrics have been calculated and "
        "trends identified across the dataset."
    )

    trends = [
        f"Dataset contains {row_count} total records across {column_count} different fields",
        (
            f"{len(numeric_columns)} numeric columns identified with statistical patterns"
            if numeric_columns
            else "Multiple data columns available for analysis"
        ),
        "Data structure is well-formed and ready for visualization",
    ]

    recommendations = [
        "Consider creating visualizations to better understand data distributions",
        "Explore correlations between different data fields",
        (
            "Compare numeric fields to identify relationships and patterns"
            if len(numeric_columns) > 1
            else "Review data patterns for insights"
        ),
        "Use aggregation functions to summarize key metrics",
    ]

    return {
        "summary": summary,
        "keyFindings": key_findings,
        "trends": trends,
        "recommendations": recommendations,
    }


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_insight(parsed: dict | None) -> dict:
    """
    Fill defaults so every record has the full shape.

    Missing/empty summary becomes "No summary available"; missing lists
    become []; key findings are coerced to {title, value, description}
    strings.
    """
    parsed = parsed or {}

    summary = parsed.get("summary")
    if not summary:
        summary = NO_SUMMARY
    elif not isinstance(summary, str):
        summary = json.dumps(summary, default=str)

    return {
        "summary": summary,
        "keyFindings": _normalize_findings(parsed.get("keyFindings")),
        "trends": _normalize_strings(parsed.get("trends")),
        "recommendations": _normalize_strings(parsed.get("recommendations")),
    }


def _normalize_findings(findings: Any) -> list[dict]:
    if not isinstance(findings, list):
        return []

    normalized = []
    for finding in findings:
        if isinstance(finding, dict):
            normalized.append({
                key: "" if finding.get(key) is None else str(finding.get(key))
                for key in ("title", "value", "description")
            })
        elif isinstance(finding, str) and finding:
            normalized.append({"title": finding, "value": "", "description": ""})
    return normalized


def _normalize_strings(items: Any) -> list[str]:
    if isinstance(items, str):
        return [items] if items else []
    if not isinstance(items, list):
        return []
    return [str(item) for item in items if item is not None and item != ""]


# =============================================================================
# NODE: PERSIST INSIGHT
# =============================================================================

def persist_insight_node(state: dict) -> dict:
    """
    Store the insight record; a concurrent duplicate resolves to the
    record that won.

    Output state updates:
        - insight, phase="present", created
    """
    node_name = "persist_insight"
    store = state["store"]
    dataset = state["dataset"]
    user_id = state["user_id"]

    record = {
        "id": uuid4().hex,
        "userId": user_id,
        "fileId": dataset.id,
        **normalize_insight(state.get("parsed_insight")),
        "sourceModel": state.get("source_model") or MOCK_MODEL_NAME,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }

    try:
        stored = store.insert_if_absent(record)
    except DuplicateInsightError:
        logger.info("Concurrent insight generation for dataset %s; using stored record", dataset.id)
        existing = store.get(user_id, dataset.id)
        return {
            "phase": "present",
            "existing_insight": existing,
            "insight": existing,
            "source": "existing",
            "created": False,
        }

    _emit_progress(state, node_name, "Insights saved", "complete")
    return {"phase": "present", "insight": stored, "created": True}


# =============================================================================
# NODE: HANDLE ERROR
# =============================================================================

def handle_error_node(state: dict) -> dict:
    """Terminal node for error states; nothing is persisted."""
    node_name = "handle_error"
    logger.error(
        "Insight generation failed in %s: %s",
        state.get("failed_node", "unknown"),
        state.get("error"),
    )
    _emit_progress(state, node_name, state.get("error") or "Insight generation failed", "failed")
    return {"phase": "absent", "insight": None, "created": False}


# =============================================================================
# NODE REGISTRY
# =============================================================================

NODE_REGISTRY = {
    "check_existing": check_existing_node,
    "summarize_data": summarize_data_node,
    "generate_insight": generate_insight_node,
    "persist_insight": persist_insight_node,
    "handle_error": handle_error_node,
}
