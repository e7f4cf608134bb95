# state.py — Shared InsightState schema
# TypedDict definition for state passed between insight graph nodes
"""
state.py — Insight Graph State Schema

Defines the TypedDict structure for state passed between LangGraph nodes
while one (user, dataset) pair moves Absent -> Generating -> Present.
"""

from __future__ import annotations

from typing import Callable, TypedDict

from agent.store import InsightStore
from config.llm_config import GenerationCapability
from tools.dataset import Dataset


class InsightState(TypedDict, total=False):
    """
    Shared state passed between all insight nodes.

    All fields are optional (total=False) to support partial updates.
    """

    # =========================================================================
    # INPUT LAYER
    # =========================================================================
    user_id: str
    dataset: Dataset
    capability: GenerationCapability
    store: InsightStore

    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    phase: str  # "absent" | "generating" | "present"
    existing_insight: dict | None  # Record found before generating

    # =========================================================================
    # ANALYSIS LAYER
    # =========================================================================
    data_summary: dict | None  # Output from summarize_dataset()

    # =========================================================================
    # SYNTHESIS LAYER
    # =========================================================================
    raw_response: str | None  # Text returned by the external capability
    parsed_insight: dict | None  # Normalized {summary, keyFindings, trends, recommendations}
    source: str | None  # "existing" | "llm" | "llm_unparsed" | "mock"
    source_model: str | None
    warnings: list[str]

    # =========================================================================
    # OUTPUT LAYER
    # =========================================================================
    insight: dict | None  # Persisted InsightRecord
    created: bool  # Whether this run created the record

    # =========================================================================
    # ERROR LAYER
    # =========================================================================
    error: str | None
    error_type: str | None
    failed_node: str | None
    recovery_hint: str | None

    # =========================================================================
    # CALLBACKS (not persisted)
    # =========================================================================
    progress_callback: Callable[[dict], None] | None


def create_initial_state(
    user_id: str,
    dataset: Dataset,
    capability: GenerationCapability,
    store: InsightStore,
    progress_callback: Callable[[dict], None] | None = None,
) -> InsightState:
    """
    Create a fresh InsightState for one generation request.

    Returns:
        Initialized InsightState dict
    """
    return InsightState(
        # Input
        user_id=user_id,
        dataset=dataset,
        capability=capability,
        store=store,

        # Lifecycle
        phase="absent",
        existing_insight=None,

        # Analysis
        data_summary=None,

        # Synthesis
        raw_response=None,
        parsed_insight=None,
        source=None,
        source_model=None,
        warnings=[],

        # Output
        insight=None,
        created=False,

        # Error
        error=None,
        error_type=None,
        failed_node=None,
        recovery_hint=None,

        # Callbacks
        progress_callback=progress_callback,
    )
