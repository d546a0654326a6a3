# src/spec_flow/graphs/state.py
from __future__ import annotations

import operator
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import IntEnum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from spec_flow.errors import StageMigrationError


class Stage(IntEnum):
    """Ordinals are persisted in checkpoints; never renumber."""

    INIT = 0
    REQUIREMENT_COLLECTION = 1
    RISK_ANALYSIS = 2
    TECH_STACK = 3
    MVP_BOUNDARY = 4
    DIAGRAM_DESIGN = 5
    DOCUMENT_GENERATION = 6
    COMPLETED = 7

    @classmethod
    def from_ordinal(cls, value: Any) -> "Stage":
        try:
            return cls(int(value))
        except (TypeError, ValueError) as e:
            raise StageMigrationError(f"Unknown stage ordinal: {value!r}") from e

    def next(self) -> "Stage":
        if self is Stage.COMPLETED:
            return self
        return Stage(self.value + 1)


PROFILE_FIELDS = (
    "project_name",
    "product_goal",
    "target_users",
    "use_cases",
    "core_functions",
    "needs_data_storage",
    "needs_multi_user",
    "needs_auth",
)

# поля, без которых нельзя уйти дальше сбора требований
REQUIRED_PROFILE_FIELDS = (
    "product_goal",
    "target_users",
    "core_functions",
    "needs_data_storage",
    "needs_multi_user",
    "needs_auth",
)

_LIST_PROFILE_FIELDS = {"use_cases", "core_functions"}
BOOLEAN_PROFILE_FIELDS = ("needs_data_storage", "needs_multi_user", "needs_auth")


def missing_required_fields(profile: Dict[str, Any]) -> List[str]:
    missing = []
    for key in REQUIRED_PROFILE_FIELDS:
        value = profile.get(key)
        if key in BOOLEAN_PROFILE_FIELDS:
            # False тоже ответ, пропуск только None
            if value is None:
                missing.append(key)
        elif not value:
            missing.append(key)
    return missing


def strict_completeness(profile: Dict[str, Any]) -> int:
    filled = len(REQUIRED_PROFILE_FIELDS) - len(missing_required_fields(profile))
    return (filled * 100) // len(REQUIRED_PROFILE_FIELDS)


class OptionChip(BaseModel):
    id: str
    label: str
    value: str


class SolutionOption(BaseModel):
    id: str
    name: str
    description: str = ""
    approach: str = ""
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    estimated_effort: str = ""


class RiskSummary(BaseModel):
    kind: Literal["risk"] = "risk"
    risks: List[str] = Field(default_factory=list)
    solutions: List[SolutionOption] = Field(default_factory=list)
    selected_approach: str = ""


class TechStack(BaseModel):
    category: Optional[str] = None
    frontend: Any = None
    backend: Any = None
    database: Any = None
    deployment: Any = None


class TechStackSummary(BaseModel):
    kind: Literal["tech_stack"] = "tech_stack"
    tech_stack: Optional[TechStack] = None
    reasoning: str = ""


class DevPlan(BaseModel):
    phase1: List[str] = Field(default_factory=list)
    phase2: List[str] = Field(default_factory=list)
    estimated_complexity: str = "medium"


class MvpSummary(BaseModel):
    kind: Literal["mvp"] = "mvp"
    mvp_features: List[str] = Field(default_factory=list)
    non_goals: List[str] = Field(default_factory=list)
    dev_plan: Optional[DevPlan] = None


class DocumentSummary(BaseModel):
    kind: Literal["document"] = "document"
    final_spec: str = ""


StageSummary = Annotated[
    Union[RiskSummary, TechStackSummary, MvpSummary, DocumentSummary],
    Field(discriminator="kind"),
]

_summary_adapter: TypeAdapter = TypeAdapter(StageSummary)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# reducers (LangGraph merges node updates through these)
# ---------------------------------------------------------------------------

def merge_profile(left: Dict[str, Any] | None, right: Dict[str, Any] | None) -> Dict[str, Any]:
    """None never erases a field, list fields are merged as ordered unions."""
    out = dict(left or {})
    for key, value in (right or {}).items():
        if value is None:
            continue
        if key in _LIST_PROFILE_FIELDS and isinstance(value, list):
            merged = list(out.get(key) or [])
            for item in value:
                if item not in merged:
                    merged.append(item)
            out[key] = merged
        else:
            out[key] = value
    return out


def merge_summary(left: Dict[Stage, Any] | None, right: Dict[Stage, Any] | None) -> Dict[Stage, Any]:
    out = dict(left or {})
    for stage, incoming in (right or {}).items():
        current = out.get(stage)
        if current is not None and current.kind == incoming.kind:
            # только явно заданные поля, вложенные модели остаются моделями
            update = {name: getattr(incoming, name) for name in incoming.model_fields_set}
            out[stage] = current.model_copy(update=update)
        else:
            out[stage] = incoming
    return out


def merge_stages(left: List[Stage] | None, right: List[Stage] | None) -> List[Stage]:
    out = list(left or [])
    for stage in right or []:
        if stage not in out:
            out.append(stage)
    return out


def merge_metadata(left: Dict[str, Any] | None, right: Dict[str, Any] | None) -> Dict[str, Any]:
    return {**(left or {}), **(right or {})}


@dataclass
class SessionState:
    session_id: str = ""
    current_stage: Stage = Stage.REQUIREMENT_COLLECTION
    completeness: int = 0

    profile: Annotated[Dict[str, Any], merge_profile] = field(default_factory=dict)
    summary: Annotated[Dict[Stage, StageSummary], merge_summary] = field(default_factory=dict)
    analyzed_stages: Annotated[List[Stage], merge_stages] = field(default_factory=list)

    messages: Annotated[List[Dict[str, str]], operator.add] = field(default_factory=list)
    user_input: str = ""
    response: str = ""
    options: Optional[List[OptionChip]] = None

    need_more_info: bool = True
    missing_fields: List[str] = field(default_factory=list)
    asked_questions: Annotated[List[str], operator.add] = field(default_factory=list)

    # stop нельзя сбросить обратно в False
    stop: Annotated[bool, operator.or_] = False
    final_spec: Optional[str] = None

    metadata: Annotated[Dict[str, Any], merge_metadata] = field(default_factory=dict)

    @classmethod
    def new(cls, session_id: str) -> "SessionState":
        now = _utcnow()
        return cls(
            session_id=session_id,
            metadata={"created_at": now, "updated_at": now, "turns": 0},
        )

    def is_analyzed(self, stage: Stage) -> bool:
        return stage in self.analyzed_stages

    def summary_for(self, stage: Stage) -> Any:
        return self.summary.get(stage)

    def to_channels(self) -> Dict[str, Any]:
        """Field values as-is, used as graph input."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_channels(cls, values: Dict[str, Any]) -> "SessionState":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe snapshot for checkpoint stores."""
        data = self.to_channels()
        data["current_stage"] = int(self.current_stage)
        data["summary"] = {str(int(k)): v.model_dump() for k, v in self.summary.items()}
        data["analyzed_stages"] = [int(s) for s in self.analyzed_stages]
        data["options"] = [o.model_dump() for o in self.options] if self.options is not None else None
        data["profile"] = dict(self.profile)
        data["messages"] = [dict(m) for m in self.messages]
        data["asked_questions"] = list(self.asked_questions)
        data["missing_fields"] = list(self.missing_fields)
        data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        values = dict(data)
        values["current_stage"] = Stage.from_ordinal(values.get("current_stage", Stage.REQUIREMENT_COLLECTION))
        values["summary"] = {
            Stage.from_ordinal(k): _summary_adapter.validate_python(v)
            for k, v in (values.get("summary") or {}).items()
        }
        values["analyzed_stages"] = [Stage.from_ordinal(s) for s in values.get("analyzed_stages") or []]
        options = values.get("options")
        values["options"] = [OptionChip(**o) for o in options] if options is not None else None
        return cls.from_channels(values)
