from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LLMOutput(BaseModel):
    """Models accept both snake_case and camelCase keys from the model."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _as_str_list(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        parts = [p.strip() for p in value.replace(";", ",").split(",")]
        return [p for p in parts if p]
    return value


class ExtractedProfile(LLMOutput):
    project_name: Optional[str] = None
    product_goal: Optional[str] = None
    target_users: Optional[str] = None
    use_cases: Optional[List[str]] = None
    core_functions: Optional[List[str]] = None
    needs_data_storage: Optional[bool] = None
    needs_multi_user: Optional[bool] = None
    needs_auth: Optional[bool] = None

    @field_validator("use_cases", "core_functions", mode="before")
    @classmethod
    def _split_lists(cls, v):
        return _as_str_list(v)

    @field_validator("target_users", mode="before")
    @classmethod
    def _join_users(cls, v):
        if isinstance(v, list):
            return ", ".join(str(x) for x in v)
        return v


class PlannerAssessment(LLMOutput):
    completeness: int = 0
    checklist: Dict[str, bool] = Field(default_factory=dict)
    missing_critical: List[str] = Field(default_factory=list)
    can_proceed: bool = False
    recommendation: str = ""


class OptionOut(LLMOutput):
    id: str
    label: str
    value: str

    @field_validator("value", "id", mode="before")
    @classmethod
    def _stringify(cls, v):
        return v if isinstance(v, str) else str(v)


class AskerOutput(LLMOutput):
    message: str = Field(min_length=1)
    options: List[OptionOut] = Field(default_factory=list)
    type: Literal["single", "multiple", "free", "single-choice", "multiple-choice", "text"] = "free"

    @field_validator("message", mode="before")
    @classmethod
    def _strip_message(cls, v):
        return v.strip() if isinstance(v, str) else v


class RiskItem(LLMOutput):
    category: str
    description: str
    severity: str = "medium"
    mitigation: Optional[str] = None


class SolutionOut(LLMOutput):
    id: str
    name: str
    description: str = ""
    approach: str = ""
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    estimated_effort: str = ""


class RiskAnalysis(LLMOutput):
    risks: List[RiskItem] = Field(default_factory=list)
    solutions: List[SolutionOut] = Field(default_factory=list)
    recommended_solution: str = ""
    reasoning: str = ""


class StackOut(LLMOutput):
    frontend: str
    backend: Optional[str] = None
    database: Optional[str] = None
    deployment: Optional[str] = None


class TechOption(LLMOutput):
    id: str
    label: str
    category: str = ""
    stack: StackOut
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    suitable_for: str = ""
    evolution_cost: str = ""
    recommended: bool = False


class TechAdvice(LLMOutput):
    recommended_category: str = ""
    reasoning: str = ""
    options: List[TechOption] = Field(min_length=1)


class DevPlanOut(LLMOutput):
    phase1: List[str] = Field(default_factory=list)
    phase2: List[str] = Field(default_factory=list)
    estimated_complexity: str = "medium"


class MvpPlan(LLMOutput):
    mvp_features: List[str] = Field(min_length=1)
    future_features: List[str] = Field(default_factory=list)
    dev_plan: Optional[DevPlanOut] = None
    recommendation: str = ""
