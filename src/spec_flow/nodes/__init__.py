from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .asker import AskerNode
from .extractor import ExtractorNode
from .mvp_boundary import MvpBoundaryNode
from .planner import PlannerNode
from .risk_analyst import RiskAnalystNode
from .spec_generator import SpecGeneratorNode
from .tech_advisor import TechAdvisorNode

AsyncNode = Callable[[Any], Awaitable[dict]]


@dataclass
class StageNodes:
    extractor: AsyncNode
    planner: AsyncNode
    asker: AsyncNode
    risk_analyst: AsyncNode
    tech_advisor: AsyncNode
    mvp_boundary: AsyncNode
    spec_generator: AsyncNode

    @classmethod
    def build(cls, *, llm, prompt_repo, telemetry=None) -> "StageNodes":
        kw = {"llm": llm, "prompt_repo": prompt_repo, "telemetry": telemetry}
        return cls(
            extractor=ExtractorNode(**kw),
            planner=PlannerNode(**kw),
            asker=AskerNode(**kw),
            risk_analyst=RiskAnalystNode(**kw),
            tech_advisor=TechAdvisorNode(**kw),
            mvp_boundary=MvpBoundaryNode(**kw),
            spec_generator=SpecGeneratorNode(**kw),
        )


__all__ = [
    "StageNodes",
    "ExtractorNode",
    "PlannerNode",
    "AskerNode",
    "RiskAnalystNode",
    "TechAdvisorNode",
    "MvpBoundaryNode",
    "SpecGeneratorNode",
]
