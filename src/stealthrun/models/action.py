"""Action step models — the compiled form of an automation script.

An ``ActionStep`` is immutable once compiled. Its ``params`` field is a
closed tagged union discriminated on ``action``: each ``ActionType`` has
exactly one params model, so dispatch tables keyed on ``ActionType`` are
exhaustive by construction.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, model_validator


class ActionType(str, Enum):
    """Browser actions a compiled step can perform."""

    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    WAIT = "wait"
    EXTRACT = "extract"
    SCREENSHOT = "screenshot"
    SCROLL = "scroll"


class _Params(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class NavigateParams(_Params):
    action: Literal[ActionType.NAVIGATE] = ActionType.NAVIGATE
    url: str = ""


class ClickParams(_Params):
    action: Literal[ActionType.CLICK] = ActionType.CLICK
    selector: str = ""


class TypeParams(_Params):
    action: Literal[ActionType.TYPE] = ActionType.TYPE
    selector: str = ""
    text: str = ""


class WaitParams(_Params):
    """Either a fixed delay (``mode="time"``) or a wait for a selector."""

    action: Literal[ActionType.WAIT] = ActionType.WAIT
    mode: Literal["time", "selector"] = "time"
    duration_ms: int = Field(default=0, ge=0)
    selector: str = ""


class ExtractParams(_Params):
    action: Literal[ActionType.EXTRACT] = ActionType.EXTRACT
    selector: str = ""


class ScreenshotParams(_Params):
    action: Literal[ActionType.SCREENSHOT] = ActionType.SCREENSHOT
    full_page: bool = False


class ScrollParams(_Params):
    """Scroll toward ``position`` (pixels, or ``"end"`` for the page bottom)."""

    action: Literal[ActionType.SCROLL] = ActionType.SCROLL
    position: Union[Literal["end"], Annotated[int, Field(ge=0)]] = "end"
    direction: Literal["up", "down"] = "down"


ActionParams = Annotated[
    Union[
        NavigateParams,
        ClickParams,
        TypeParams,
        WaitParams,
        ExtractParams,
        ScreenshotParams,
        ScrollParams,
    ],
    Field(discriminator="action"),
]

PARAMS_BY_TYPE: dict[ActionType, type[BaseModel]] = {
    ActionType.NAVIGATE: NavigateParams,
    ActionType.CLICK: ClickParams,
    ActionType.TYPE: TypeParams,
    ActionType.WAIT: WaitParams,
    ActionType.EXTRACT: ExtractParams,
    ActionType.SCREENSHOT: ScreenshotParams,
    ActionType.SCROLL: ScrollParams,
}


class ErrorPolicy(BaseModel):
    """How the monitor reacts when a step fails."""

    model_config = ConfigDict(frozen=True)

    ignore_errors: bool = False
    retry_count: int = Field(
        default=3,
        ge=0,
        description="Retries after the first attempt (total attempts = retry_count + 1).",
    )


class ActionStep(BaseModel):
    """Single compiled step of an automation script.

    ``fallbacks`` holds partial params (e.g. ``{"selector": "#email"}``)
    merged over the primary params on retry attempts, in order.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    ordinal: int = Field(ge=1)
    params: ActionParams
    fallbacks: list[dict[str, Any]] = Field(default_factory=list)
    error_policy: ErrorPolicy = Field(default_factory=ErrorPolicy)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def type(self) -> ActionType:
        return self.params.action

    @model_validator(mode="after")
    def _check_fallbacks(self) -> "ActionStep":
        params_model = type(self.params)
        allowed = set(params_model.model_fields) - {"action"}
        primary = self.params.model_dump()
        for idx, fallback in enumerate(self.fallbacks):
            unknown = set(fallback) - allowed
            if unknown:
                raise ValueError(
                    f"Fallback {idx} of step {self.id} has keys not valid for "
                    f"{self.params.action.value}: {sorted(unknown)}"
                )
            try:
                params_model.model_validate({**primary, **fallback})
            except ValidationError as exc:
                first = exc.errors()[0]
                raise ValueError(
                    f"Fallback {idx} of step {self.id} has an invalid "
                    f"{'.'.join(str(p) for p in first['loc'])}: {first['msg']}"
                ) from None
        return self

    def params_for(self, attempt: int) -> tuple[Any, int | None]:
        """Return the params to use for *attempt* (1-based) and the fallback index used.

        Attempt 1 always uses the primary params. Attempt ``k >= 2`` uses
        fallback ``k - 2`` when it exists, otherwise the primary params again.
        """
        index = attempt - 2
        if 0 <= index < len(self.fallbacks):
            merged = {**self.params.model_dump(), **self.fallbacks[index]}
            return type(self.params).model_validate(merged), index
        return self.params, None


def validate_step_sequence(steps: list[ActionStep]) -> None:
    """Check that step ids are unique and ordinals strictly increase.

    Raises:
        ValueError: If either invariant is violated.
    """
    seen: set[str] = set()
    previous = 0
    for step in steps:
        if step.id in seen:
            raise ValueError(f"Duplicate step id: {step.id}")
        seen.add(step.id)
        if step.ordinal <= previous:
            raise ValueError(
                f"Step {step.id} ordinal {step.ordinal} does not follow {previous}"
            )
        previous = step.ordinal
