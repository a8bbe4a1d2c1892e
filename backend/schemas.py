# schemas.py
import json
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from typing import Any, Dict, List, Literal, Optional

QUESTION_TYPES = ("rating", "yes_no", "multiple_choice")
SCORING_METHODS = ("sum", "average")
SURVEY_STATUSES = ("draft", "published")


def _decode_json(value, empty):
    if value is None or value == "":
        return empty
    if isinstance(value, (dict, list)):
        return value
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return empty
    return decoded if isinstance(decoded, type(empty)) else empty


class ChoiceOption(BaseModel):
    label: str
    value: str


class ButtonConfig(BaseModel):
    enabled: bool = False
    text: str = ""
    url: str = ""
    description: str = ""


class QuestionIn(BaseModel):
    question_text: str
    question_type: str = "rating"
    sort_order: int = 0
    min_score: int = 0
    max_score: int = 10
    required: bool = True
    options: List[ChoiceOption] = []


class QuestionUpdate(BaseModel):
    question_text: Optional[str] = None
    question_type: Optional[str] = None
    sort_order: Optional[int] = None
    min_score: Optional[int] = None
    max_score: Optional[int] = None
    required: Optional[bool] = None
    options: Optional[List[ChoiceOption]] = None


class SurveyIn(BaseModel):
    title: str
    description: Optional[str] = None
    intro_enabled: bool = False
    intro_content: Optional[str] = None
    scoring_method: str = "sum"
    status: str = "draft"
    colors_config: Dict[str, str] = {}
    button_config: ButtonConfig = ButtonConfig()


class SurveyUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    intro_enabled: Optional[bool] = None
    intro_content: Optional[str] = None
    scoring_method: Optional[str] = None
    status: Optional[str] = None
    colors_config: Optional[Dict[str, str]] = None
    button_config: Optional[ButtonConfig] = None


class SurveyFilter(BaseModel):
    status: str = "all"
    orderby: str = "updated_at"
    order: Literal["ASC", "DESC", "asc", "desc"] = "DESC"
    limit: int = -1
    offset: int = 0


class QuestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    survey_id: int
    question_text: str
    question_type: str
    sort_order: int
    min_score: int
    max_score: int
    required: bool
    options: List[ChoiceOption] = []

    @field_validator("options", mode="before")
    @classmethod
    def _decode_options(cls, v):
        return _decode_json(v, [])


class SurveyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    title: str
    description: Optional[str] = None
    intro_enabled: bool = False
    intro_content: Optional[str] = None
    scoring_method: str = "sum"
    status: str = "draft"
    colors_config: Dict[str, Any] = {}
    button_config: Dict[str, Any] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("colors_config", "button_config", mode="before")
    @classmethod
    def _decode_config(cls, v):
        return _decode_json(v, {})


class SurveyDetail(BaseModel):
    survey: SurveyOut
    questions: List[QuestionOut]


class SubmissionIn(BaseModel):
    survey_id: int
    user_name: str
    user_email: EmailStr
    responses: Dict[int, str] = {}

    @field_validator("user_name", mode="before")
    @classmethod
    def _name_required(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("user_email", mode="before")
    @classmethod
    def _email_required(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("Email address is required")
        return v

    @field_validator("responses", mode="before")
    @classmethod
    def _stringify_answers(cls, v):
        if not v:
            return {}
        return {k: "" if val is None else str(val) for k, val in dict(v).items()}


class SubmissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    survey_id: int
    user_name: str
    user_email: str
    total_score: float
    submission_data: Dict[str, Any] = {}
    submitted_at: Optional[datetime] = None
    ip_address: Optional[str] = None

    @field_validator("submission_data", mode="before")
    @classmethod
    def _decode_data(cls, v):
        return _decode_json(v, {})


class ResponseOut(BaseModel):
    id: int
    submission_id: int
    question_id: int
    response_value: Optional[str] = None
    score_value: float
    question_text: str
    question_type: str


class SubmitResult(BaseModel):
    submission_id: int
    total_score: float
    redirect_url: str


class SurveyStatistics(BaseModel):
    total_submissions: int
    average_score: Optional[float] = None
    score_distribution: List[Dict[str, float]] = []
    recent_submissions: int = 0
