import json

import pytest

from conftest import COMPLETE_PROFILE
from spec_flow.errors import CheckpointError, StageMigrationError
from spec_flow.graphs.state import RiskSummary, SessionState, Stage
from spec_flow.storage.checkpoint import InMemoryCheckpointStore, JsonFileCheckpointStore


def _state(complete_profile):
    state = SessionState.new("sess/1")
    state.current_stage = Stage.RISK_ANALYSIS
    state.profile = dict(complete_profile)
    state.analyzed_stages = [Stage.RISK_ANALYSIS]
    state.summary = {Stage.RISK_ANALYSIS: RiskSummary(risks=["security: data leaks"])}
    state.messages = [{"role": "user", "content": "hi"}]
    return state


@pytest.mark.asyncio
async def test_memory_store_roundtrip_is_isolated(complete_profile):
    store = InMemoryCheckpointStore()
    state = _state(complete_profile)
    await store.put("t1", state)

    state.profile["product_goal"] = "mutated after save"
    loaded = await store.get("t1")

    assert loaded.profile["product_goal"] == COMPLETE_PROFILE["product_goal"]
    assert loaded.current_stage is Stage.RISK_ANALYSIS
    assert loaded.summary_for(Stage.RISK_ANALYSIS).risks == ["security: data leaks"]
    assert await store.get("missing") is None

    await store.delete("t1")
    assert await store.get("t1") is None


@pytest.mark.asyncio
async def test_file_store_roundtrip(tmp_path, complete_profile):
    store = JsonFileCheckpointStore(tmp_path)
    await store.put("sess/1", _state(complete_profile))

    files = list(tmp_path.glob("*.json"))
    assert [f.name for f in files] == ["sess_1.json"]

    loaded = await JsonFileCheckpointStore(tmp_path).get("sess/1")
    assert loaded.session_id == "sess/1"
    assert loaded.is_analyzed(Stage.RISK_ANALYSIS)
    assert loaded.messages == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_file_store_unknown_stage_is_migration_error(tmp_path, complete_profile):
    store = JsonFileCheckpointStore(tmp_path)
    await store.put("t", _state(complete_profile))
    path = tmp_path / "t.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    data["current_stage"] = 12
    path.write_text(json.dumps(data), encoding="utf-8")

    with pytest.raises(StageMigrationError):
        await store.get("t")


@pytest.mark.asyncio
async def test_file_store_corrupt_file(tmp_path):
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(CheckpointError):
        await JsonFileCheckpointStore(tmp_path).get("broken")


@pytest.mark.asyncio
async def test_file_store_requires_thread_id(tmp_path):
    with pytest.raises(CheckpointError):
        await JsonFileCheckpointStore(tmp_path).get("")
