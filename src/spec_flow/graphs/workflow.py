import json
import logging

from langgraph.graph import END, StateGraph

from spec_flow.graphs.router import ROUTE_TARGETS, route
from spec_flow.graphs.state import SessionState


def build_workflow_graph(stage_nodes):
    """
    extractor -> planner -> (route) -> asker | risk_analyst | tech_advisor | mvp_boundary | spec_generator | END.
    asker и spec_generator всегда завершают вызов, остальные снова проходят через route.
    """
    logging.info(
        json.dumps(
            {"event": "graph_build", "graph": "spec_flow", "message": "Building stage workflow graph"},
            ensure_ascii=False,
        )
    )

    workflow = StateGraph(SessionState)

    workflow.add_node("extractor", stage_nodes.extractor)
    workflow.add_node("planner", stage_nodes.planner)
    workflow.add_node("asker", stage_nodes.asker)
    workflow.add_node("risk_analyst", stage_nodes.risk_analyst)
    workflow.add_node("tech_advisor", stage_nodes.tech_advisor)
    workflow.add_node("mvp_boundary", stage_nodes.mvp_boundary)
    workflow.add_node("spec_generator", stage_nodes.spec_generator)

    workflow.set_entry_point("extractor")
    workflow.add_edge("extractor", "planner")

    for name in ("planner", "risk_analyst", "tech_advisor", "mvp_boundary"):
        workflow.add_conditional_edges(name, route, ROUTE_TARGETS)

    workflow.add_edge("asker", END)
    workflow.add_edge("spec_generator", END)

    return workflow.compile()
