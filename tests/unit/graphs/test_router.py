import pytest

from conftest import make_state
from spec_flow.graphs.router import TERMINATE, route
from spec_flow.graphs.state import Stage


def test_missing_info_goes_to_asker():
    state = make_state(current_stage=Stage.REQUIREMENT_COLLECTION, need_more_info=True)
    assert route(state) == "asker"


def test_complete_requirements_go_to_risk_analysis():
    state = make_state(current_stage=Stage.REQUIREMENT_COLLECTION, need_more_info=False)
    assert route(state) == "risk_analyst"


def test_init_stage_behaves_like_collection():
    assert route(make_state(current_stage=Stage.INIT, need_more_info=True)) == "asker"
    assert route(make_state(current_stage=Stage.INIT, need_more_info=False)) == "risk_analyst"


@pytest.mark.parametrize(
    "stage,analyzer,successor",
    [
        (Stage.RISK_ANALYSIS, "risk_analyst", "tech_advisor"),
        (Stage.TECH_STACK, "tech_advisor", "mvp_boundary"),
        (Stage.MVP_BOUNDARY, "mvp_boundary", "spec_generator"),
    ],
)
def test_analysis_stage_table(stage, analyzer, successor):
    fresh = make_state(current_stage=stage, need_more_info=False)
    assert route(fresh) == analyzer

    waiting = make_state(current_stage=stage, analyzed_stages=[stage], need_more_info=True)
    assert route(waiting) == TERMINATE

    done = make_state(current_stage=stage, analyzed_stages=[stage], need_more_info=False)
    assert route(done) == successor


def test_completed_risk_analysis_waits_for_user_choice():
    state = make_state(
        current_stage=Stage.RISK_ANALYSIS,
        analyzed_stages=[Stage.RISK_ANALYSIS],
        need_more_info=True,
    )
    assert route(state) == TERMINATE


@pytest.mark.parametrize("stage", [Stage.DIAGRAM_DESIGN, Stage.DOCUMENT_GENERATION, Stage.COMPLETED])
def test_terminal_stages_end(stage):
    assert route(make_state(current_stage=stage, need_more_info=False)) == TERMINATE


@pytest.mark.parametrize("stage", list(Stage))
def test_stop_always_terminates(stage):
    assert route(make_state(current_stage=stage, need_more_info=True, stop=True)) == TERMINATE


def test_route_is_pure():
    state = make_state(current_stage=Stage.TECH_STACK, need_more_info=False)
    before = state.to_dict()
    route(state)
    route(state)
    assert state.to_dict() == before
