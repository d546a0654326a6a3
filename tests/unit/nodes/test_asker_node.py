import pytest

from conftest import FakeNodeLLM, make_state
from spec_flow.llm.errors import LLMParseError
from spec_flow.nodes.asker import FALLBACK_QUESTIONS, AskerNode, fallback_question


def test_fallback_question_follows_missing_order():
    question, options = fallback_question(["needs_auth", "product_goal"])
    assert question == FALLBACK_QUESTIONS["needs_auth"][0]
    assert [o.value for o in options] == ["true", "false"]


def test_fallback_question_default():
    question, options = fallback_question(["unknown_field"])
    assert question == FALLBACK_QUESTIONS["product_goal"][0]
    assert options is None


@pytest.mark.asyncio
async def test_llm_question_with_options(prompt_repo):
    llm = FakeNodeLLM(
        {
            "asker": {
                "message": "Who will use it?",
                "options": [{"id": 1, "label": "Teams", "value": "teams"}],
                "type": "single",
            }
        }
    )
    node = AskerNode(llm=llm, prompt_repo=prompt_repo)

    update = await node(make_state(missing_fields=["target_users"], asked_questions=["What is the goal?"]))

    assert update["response"] == "Who will use it?"
    assert update["options"][0].id == "1"
    assert update["asked_questions"] == ["Who will use it?"]
    assert "What is the goal?" in llm.calls[0]["user_message"]


@pytest.mark.asyncio
async def test_fallback_is_still_recorded_as_asked(prompt_repo):
    node = AskerNode(llm=FakeNodeLLM({"asker": LLMParseError("bad")}), prompt_repo=prompt_repo)

    update = await node(make_state(missing_fields=["needs_data_storage"]))

    assert update["response"] == FALLBACK_QUESTIONS["needs_data_storage"][0]
    assert [o.id for o in update["options"]] == ["yes", "no"]
    assert update["asked_questions"] == [update["response"]]


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   "])
async def test_blank_llm_question_uses_fallback(prompt_repo, message):
    llm = FakeNodeLLM({"asker": {"message": message, "options": []}})
    node = AskerNode(llm=llm, prompt_repo=prompt_repo)

    update = await node(make_state(missing_fields=["target_users"]))

    assert update["response"] == FALLBACK_QUESTIONS["target_users"][0]
    assert update["asked_questions"] == [update["response"]]
