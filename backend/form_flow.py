"""Multi-step survey form rules, shipped to the browser with the form.

    INTRO --start--> QUESTION(1) --next--> ... QUESTION(n) --finish--> LEAD_CAPTURE
    LEAD_CAPTURE --submit--> SUBMITTING --succeed--> RESULT
                                        --fail/timeout--> LEAD_CAPTURE

``FormFlow.client_config`` serialises the steps, this transition table and
the validation messages into the form's ``data-flow`` attribute, and the
browser script only performs transitions listed there. ``next``, ``finish``
and ``submit`` are gated on validating the current step, ``prev`` is not.
SUBMITTING has no ``submit`` edge, so repeated clicks cannot post twice.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
REQUEST_TIMEOUT_MS = 30000

REQUIRED_FIELD = "This field is required."
INVALID_EMAIL = "Please enter a valid email address."
TIMEOUT_MESSAGE = "The request timed out. Please try again."
NETWORK_ERROR = "An error occurred. Please try again."


class FlowState(str, Enum):
    INTRO = "intro"
    QUESTION = "question"
    LEAD_CAPTURE = "lead_capture"
    SUBMITTING = "submitting"
    RESULT = "result"


class FlowEvent(str, Enum):
    START = "start"
    NEXT = "next"
    FINISH = "finish"
    PREV = "prev"
    SUBMIT = "submit"
    SUCCEED = "succeed"
    FAIL = "fail"
    TIMEOUT = "timeout"


TRANSITIONS: Dict[Tuple[FlowState, FlowEvent], FlowState] = {
    (FlowState.INTRO, FlowEvent.START): FlowState.QUESTION,
    (FlowState.QUESTION, FlowEvent.NEXT): FlowState.QUESTION,
    (FlowState.QUESTION, FlowEvent.FINISH): FlowState.LEAD_CAPTURE,
    (FlowState.QUESTION, FlowEvent.PREV): FlowState.QUESTION,
    (FlowState.LEAD_CAPTURE, FlowEvent.PREV): FlowState.QUESTION,
    (FlowState.LEAD_CAPTURE, FlowEvent.SUBMIT): FlowState.SUBMITTING,
    (FlowState.SUBMITTING, FlowEvent.SUCCEED): FlowState.RESULT,
    (FlowState.SUBMITTING, FlowEvent.FAIL): FlowState.LEAD_CAPTURE,
    (FlowState.SUBMITTING, FlowEvent.TIMEOUT): FlowState.LEAD_CAPTURE,
}
GATED_EVENTS = (FlowEvent.NEXT, FlowEvent.FINISH, FlowEvent.SUBMIT)


def transition(state: str, event: str) -> Optional[FlowState]:
    """Target state, or None when the event is not allowed from ``state``."""
    return TRANSITIONS.get((FlowState(state), FlowEvent(event)))


def progress_percent(current_step: int, total_steps: int) -> float:
    if total_steps <= 0:
        return 0.0
    current = max(0, min(current_step, total_steps))
    return round(current / total_steps * 100, 2)


def input_kind(question_type: str) -> str:
    return "radio" if question_type in ("rating", "yes_no", "multiple_choice") else "text"


@dataclass(frozen=True)
class StepInput:
    question_id: int
    required: bool = True
    kind: str = "radio"   # "radio" or "text"


@dataclass(frozen=True)
class FormFlow:
    inputs: Tuple[StepInput, ...]
    intro_enabled: bool = False

    def __post_init__(self):
        if not self.inputs:
            raise ValueError("A survey form needs at least one question")

    @classmethod
    def for_questions(cls, questions, intro_enabled: bool = False) -> "FormFlow":
        inputs = tuple(StepInput(q.id, bool(q.required), input_kind(q.question_type)) for q in questions)
        return cls(inputs=inputs, intro_enabled=intro_enabled)

    @property
    def total_steps(self) -> int:
        # one step per question plus the lead-capture step
        return len(self.inputs) + 1

    @property
    def initial_state(self) -> FlowState:
        return FlowState.INTRO if self.intro_enabled else FlowState.QUESTION

    def client_config(self) -> dict:
        """JSON-ready rules for the browser script."""
        return {
            "initial_state": self.initial_state.value,
            "total_steps": self.total_steps,
            "steps": [
                {"question_id": i.question_id, "required": i.required, "kind": i.kind}
                for i in self.inputs
            ],
            "transitions": {f"{s.value}:{e.value}": t.value for (s, e), t in TRANSITIONS.items()},
            "gated": [e.value for e in GATED_EVENTS],
            "messages": {
                "required": REQUIRED_FIELD,
                "invalid_email": INVALID_EMAIL,
                "timeout": TIMEOUT_MESSAGE,
                "network": NETWORK_ERROR,
            },
            "email_pattern": EMAIL_PATTERN,
            "timeout_ms": REQUEST_TIMEOUT_MS,
        }
