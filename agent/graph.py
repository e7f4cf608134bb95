# graph.py — LangGraph insight workflow definition
# Defines the Absent → Generating → Present state machine and routing
"""
graph.py — LangGraph Workflow Definition

Insight generation for one (user, dataset) pair.

Flow:
    START → check_existing ──[present]──────────────────────────────→ END
                 │
            [generating]
                 ↓
           summarize_data → generate_insight → persist_insight → END
                 ↓
              [ERROR] → handle_error → END

generate_insight never routes to handle_error: external failures are
replaced by the mock insight inside the node.
"""

from __future__ import annotations

from typing import Callable, Literal

from langgraph.graph import END, START, StateGraph

from agent.nodes import (
    check_existing_node,
    generate_insight_node,
    handle_error_node,
    persist_insight_node,
    summarize_data_node,
)
from agent.state import InsightState, create_initial_state
from agent.store import InMemoryInsightStore, InsightStore
from config.llm_config import GenerationCapability
from tools.dataset import Dataset


# =============================================================================
# EXCEPTIONS
# =============================================================================

class InsightGenerationError(Exception):
    """Raised when the graph ends in an error state."""

    def __init__(self, message: str, error_type: str | None = None, recovery_hint: str | None = None):
        super().__init__(message)
        self.error_type = error_type
        self.recovery_hint = recovery_hint


# =============================================================================
# CONDITIONAL ROUTING
# =============================================================================

def route_after_node(state: InsightState) -> Literal["continue", "error"]:
    """
    Conditional router: check if error occurred, route accordingly.

    Returns:
        "error" if state has error, "continue" otherwise
    """
    if state.get("error"):
        return "error"
    return "continue"


def route_after_check(state: InsightState) -> Literal["present", "generating"]:
    """Existing record short-circuits to END."""
    if state.get("phase") == "present":
        return "present"
    return "generating"


# =============================================================================
# GRAPH BUILDER
# =============================================================================

def build_insight_graph() -> StateGraph:
    """
    Build the LangGraph workflow for insight generation.

    Returns:
        Uncompiled StateGraph
    """
    workflow = StateGraph(InsightState)

    workflow.add_node("check_existing", check_existing_node)
    workflow.add_node("summarize_data", summarize_data_node)
    workflow.add_node("generate_insight", generate_insight_node)
    workflow.add_node("persist_insight", persist_insight_node)
    workflow.add_node("handle_error", handle_error_node)

    workflow.add_edge(START, "check_existing")

    # check_existing → END (present) OR summarize_data
    workflow.add_conditional_edges(
        "check_existing",
        route_after_check,
        {
            "present": END,
            "generating": "summarize_data",
        },
    )

    # summarize_data → generate_insight OR handle_error
    workflow.add_conditional_edges(
        "summarize_data",
        route_after_node,
        {
            "continue": "generate_insight",
            "error": "handle_error",
        },
    )

    workflow.add_edge("generate_insight", "persist_insight")
    workflow.add_edge("persist_insight", END)
    workflow.add_edge("handle_error", END)

    return workflow


_compiled_graph = None


def get_compiled_graph():
    """
    Get or create the compiled graph singleton.

    The graph holds no per-request data; capability and store travel in
    the state.
    """
    global _compiled_graph
    if _compiled_graph is None:
        _compiled_graph = build_insight_graph().compile()
    return _compiled_graph


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class InsightOrchestrator:
    """
    At most one insight per (user, dataset).

    The generation capability and store are injected here and nowhere
    else; an unavailable capability means mock insights.
    """

    def __init__(
        self,
        capability: GenerationCapability | None = None,
        store: InsightStore | None = None,
    ):
        self.capability = capability or GenerationCapability.unavailable()
        self.store = store if store is not None else InMemoryInsightStore()

    def run(
        self,
        user_id: str,
        dataset: Dataset,
        progress_callback: Callable[[dict], None] | None = None,
    ) -> InsightState:
        """
        Run the workflow and return the final state (insight, source,
        created, warnings). The dataset gains a back-reference to the
        insight.

        Raises:
            InsightGenerationError: The dataset could not be summarized
        """
        initial_state = create_initial_state(
            user_id=user_id,
            dataset=dataset,
            capability=self.capability,
            store=self.store,
            progress_callback=progress_callback,
        )

        final_state = get_compiled_graph().invoke(initial_state)

        if final_state.get("error"):
            raise InsightGenerationError(
                final_state["error"],
                error_type=final_state.get("error_type"),
                recovery_hint=final_state.get("recovery_hint"),
            )

        dataset.insight_id = final_state["insight"]["id"]
        return final_state

    def generate(
        self,
        user_id: str,
        dataset: Dataset,
        progress_callback: Callable[[dict], None] | None = None,
    ) -> dict:
        """
        Return the insight for (user, dataset), generating it if absent.

        Example:
            orchestrator = InsightOrchestrator(get_generation_capability())
            insight = orchestrator.generate("user-1", dataset)
        """
        return self.run(user_id, dataset, progress_callback)["insight"]

    def get(self, user_id: str, dataset_id: str) -> dict:
        """
        Raises:
            InsightNotFoundError: Nothing generated yet for the pair
        """
        return self.store.get(user_id, dataset_id)

    def list_insights(self, user_id: str) -> list[dict]:
        return self.store.list_for_user(user_id)
