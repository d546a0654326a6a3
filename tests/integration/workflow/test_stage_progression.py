import pytest

from conftest import COMPLETE_PROFILE, make_state
from deps import make_deps
from spec_flow.graphs.state import Stage
from spec_flow.nodes.asker import FALLBACK_QUESTIONS
from spec_flow.orchestrator.engine import COMPLETED_RESPONSE

PROFILE_ANSWER = {
    "productGoal": COMPLETE_PROFILE["product_goal"],
    "targetUsers": COMPLETE_PROFILE["target_users"],
    "coreFunctions": COMPLETE_PROFILE["core_functions"],
    "needsDataStorage": True,
    "needsMultiUser": True,
    "needsAuth": False,
}
ASSESSMENT = {"completeness": 100, "canProceed": True}
RISKS = {
    "risks": [{"category": "scale", "description": "Peak load before classes"}],
    "solutions": [{"id": "a", "name": "Managed backend"}, {"id": "b", "name": "Custom backend"}],
}
TECH = {
    "reasoning": "Managed services keep the team small",
    "options": [
        {"id": "t1", "label": "Next.js + Supabase", "category": "web", "stack": {"frontend": "Next.js", "database": "Supabase"}},
        {"id": "t2", "label": "Django", "category": "web", "stack": {"frontend": "HTMX", "backend": "Django", "database": "Postgres"}},
    ],
}
MVP = {"mvpFeatures": ["Class schedule", "Booking"], "futureFeatures": ["Payments"]}
DOCUMENT = "# Yoga booking\n\n## Scope\n- Class schedule\n- Booking\n"


def full_scripts():
    return {
        "extractor": [PROFILE_ANSWER],
        "planner": [ASSESSMENT, ASSESSMENT, ASSESSMENT],
        "risk": [RISKS],
        "tech": [TECH],
        "mvp": [MVP],
        "spec": [DOCUMENT],
    }


@pytest.mark.asyncio
async def test_full_session_reaches_completed():
    deps = make_deps(full_scripts())
    service = deps.service()

    s1 = await service.run("yoga", "I want to build a booking app for yoga studios")
    assert s1.current_stage is Stage.RISK_ANALYSIS
    assert s1.need_more_info is True
    assert [o.value for o in s1.options] == ["a", "b"]
    assert s1.completeness == 100

    s2 = await service.continue_("yoga", "b")
    assert s2.summary_for(Stage.RISK_ANALYSIS).selected_approach == "b"
    assert s2.summary_for(Stage.RISK_ANALYSIS).risks == ["scale: Peak load before classes"]
    assert s2.current_stage is Stage.TECH_STACK
    assert len(s2.options) == 2

    s3 = await service.continue_("yoga", s2.options[1].value)
    assert s3.summary_for(Stage.TECH_STACK).tech_stack.backend == "Django"
    assert s3.current_stage is Stage.COMPLETED
    assert s3.stop is True
    assert s3.final_spec == DOCUMENT
    assert s3.summary_for(Stage.MVP_BOUNDARY).mvp_features == ["Class schedule", "Booking"]
    assert s3.analyzed_stages == [
        Stage.RISK_ANALYSIS,
        Stage.TECH_STACK,
        Stage.MVP_BOUNDARY,
        Stage.DOCUMENT_GENERATION,
    ]

    # каждый ход: реплика пользователя + ответ
    assert [m["role"] for m in s3.messages] == ["user", "assistant"] * 3
    assert s3.metadata["turns"] == 3

    calls_before = len(deps.provider.requests)
    s4 = await service.continue_("yoga", "one more thing")
    assert s4.response == COMPLETED_RESPONSE
    assert s4.stop is True
    assert len(deps.provider.requests) == calls_before

    stored = await service.get_state("yoga")
    assert stored.current_stage is Stage.COMPLETED
    assert stored.final_spec == DOCUMENT
    assert stored.messages[-2:] == [
        {"role": "user", "content": "one more thing"},
        {"role": "assistant", "content": COMPLETED_RESPONSE},
    ]
    assert stored.metadata["turns"] == 4


@pytest.mark.asyncio
async def test_incomplete_profile_asks_questions():
    deps = make_deps(
        {
            "extractor": [{"productGoal": "Yoga booking"}],
            "asker": [{"message": "Who are your users?", "options": []}],
        }
    )
    state = await deps.service().run("q", "Yoga booking")

    assert state.current_stage is Stage.REQUIREMENT_COLLECTION
    assert state.need_more_info is True
    assert state.response == "Who are your users?"
    assert state.asked_questions == ["Who are your users?"]
    assert "target_users" in state.missing_fields


@pytest.mark.asyncio
async def test_asker_failure_falls_back_to_static_question():
    deps = make_deps({"extractor": [{}], "asker": ["this is not json"]}, use_cache=False)

    state = await deps.service().run("q", "hello")

    assert state.response == FALLBACK_QUESTIONS["product_goal"][0]
    assert state.asked_questions == [state.response]
    assert deps.telemetry.snapshot()["errors"] == {"LLMParseError": 1}


@pytest.mark.asyncio
async def test_question_limit_moves_on_to_risk_analysis():
    questions = [{"message": f"Question {i}?"} for i in range(5)]
    deps = make_deps({"extractor": [{}] * 6, "asker": questions, "risk": [RISKS]}, use_cache=False)
    service = deps.service()

    state = await service.run("loop", "hello")
    for i in range(4):
        state = await service.continue_("loop", f"not sure {i}")
    assert len(state.asked_questions) == 5
    assert state.current_stage is Stage.REQUIREMENT_COLLECTION

    state = await service.continue_("loop", "still not sure")
    assert state.current_stage is Stage.RISK_ANALYSIS
    assert state.completeness == 80
    assert state.is_analyzed(Stage.RISK_ANALYSIS)
    assert deps.provider.calls("asker") == 5


@pytest.mark.asyncio
async def test_question_limit_at_tech_stack_runs_mvp_scoping():
    deps = make_deps({"extractor": [{}], "mvp": [MVP], "spec": [DOCUMENT]}, use_cache=False)
    seeded = make_state(
        session_id="tech-loop",
        current_stage=Stage.TECH_STACK,
        profile=dict(COMPLETE_PROFILE),
        analyzed_stages=[Stage.RISK_ANALYSIS, Stage.TECH_STACK],
        asked_questions=[f"Question {i}?" for i in range(5)],
        need_more_info=True,
    )
    await deps.checkpoints.put("tech-loop", seeded)

    state = await deps.service().continue_("tech-loop", "no idea, you choose")

    assert deps.provider.calls("mvp") == 1
    assert deps.provider.calls("planner") == 0
    assert state.summary_for(Stage.MVP_BOUNDARY).mvp_features == ["Class schedule", "Booking"]
    assert state.is_analyzed(Stage.MVP_BOUNDARY)
    assert state.current_stage is Stage.COMPLETED
    assert state.final_spec == DOCUMENT


@pytest.mark.asyncio
async def test_failed_risk_analysis_skips_to_tech_advice():
    scripts = full_scripts()
    scripts["risk"] = [{"risks": []}]
    deps = make_deps(scripts)

    state = await deps.service().run("skip", "I want to build a booking app for yoga studios")

    assert state.current_stage is Stage.TECH_STACK
    assert state.is_analyzed(Stage.TECH_STACK)
    assert not state.is_analyzed(Stage.RISK_ANALYSIS)
    assert state.need_more_info is True
    assert "Next.js" in state.response


@pytest.mark.asyncio
async def test_identical_prompts_are_served_from_cache():
    scripts = {
        "extractor": [{"productGoal": "Yoga booking"}],
        "asker": [{"message": "Who are your users?"}],
    }
    deps = make_deps(scripts)
    service = deps.service()

    await service.run("one", "Yoga booking")
    # вторая сессия с тем же вводом: ключ кэша не зависит от session_id
    second = await service.run("two", "Yoga booking")

    assert second.response == "Who are your users?"
    assert deps.provider.calls("extractor") == 1
    assert deps.provider.calls("asker") == 1
    assert deps.cache.get_stats()["hits"] == 2
