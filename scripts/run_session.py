import argparse
import asyncio
import json
import logging
from uuid import uuid4

from spec_flow.api.config import get_settings
from spec_flow.api.deps import (
    build_workflow_service,
    get_breaker,
    get_cache_manager,
    get_llm_client,
    get_prompt_repo,
    retry_policy_from_settings,
)
from spec_flow.storage.checkpoint import InMemoryCheckpointStore, JsonFileCheckpointStore


def print_turn(state, *, verbose: bool) -> None:
    print(f"\n[{state.current_stage.name} | completeness {state.completeness}%]")
    print(state.response)
    for opt in state.options or []:
        print(f"  ({opt.id}) {opt.label} -> {opt.value}")
    if verbose:
        print(json.dumps(state.to_dict()["profile"], ensure_ascii=False, indent=2))


async def main() -> None:
    parser = argparse.ArgumentParser(description="Interactive requirements session in the terminal")
    parser.add_argument("--session", default=None, help="Session id; resumes it when --data-dir has a checkpoint")
    parser.add_argument("--data-dir", default=None, help="Store checkpoints as JSON files in this directory")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    settings = get_settings()
    checkpoints = JsonFileCheckpointStore(args.data_dir) if args.data_dir else InMemoryCheckpointStore()
    service = build_workflow_service(
        llm=get_llm_client(),
        prompt_repo=get_prompt_repo(),
        checkpoints=checkpoints,
        cache=get_cache_manager(),
        breaker=get_breaker(),
        retry_policy=retry_policy_from_settings(settings),
        cache_ttl_s=settings.cache_ttl_s,
    )

    session_id = args.session or uuid4().hex[:12]
    existing = await service.get_state(session_id)
    print(f"session: {session_id}" + (" (resumed)" if existing else ""))

    while True:
        try:
            text = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not text:
            continue
        if text in {"/quit", "/exit"}:
            break
        if existing is None:
            state = await service.run(session_id, text)
        else:
            state = await service.continue_(session_id, text)
        existing = state
        print_turn(state, verbose=args.verbose)
        if state.stop:
            if state.final_spec:
                print("\n" + state.final_spec)
            break

    print(json.dumps({"cache": get_cache_manager().get_stats(), **service.get_stats()}, ensure_ascii=False, default=str))


if __name__ == "__main__":
    asyncio.run(main())
