from __future__ import annotations
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime


class CamelModel(BaseModel):
    """
    Base for every API body.
    Python attributes stay snake_case, the JSON wire format is camelCase.
    Requests may use either spelling.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# 인증
class UserCreate(CamelModel):
    """/auth/register 요청 스키마."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserPublic(CamelModel):
    """
    비밀번호 해시 등 민감 정보를 제외한 사용자 정보.
    The auth guard attaches this projection to every protected request.
    """
    id: int
    name: str
    email: EmailStr


class RegisterResp(CamelModel):
    user: UserPublic
    message: str = "User registered successfully."


class LoginResp(CamelModel):
    user: UserPublic
    token: str
    message: str = "Login successful"


class MeResp(CamelModel):
    user: UserPublic


class MessageResp(CamelModel):
    message: str


# 기분 / 활동 기록
class MoodCreate(CamelModel):
    score: int = Field(..., ge=0, le=100)
    note: Optional[str] = None
    context: Optional[str] = None
    activities: Optional[List[str]] = None

    @field_validator("note", "context")
    @classmethod
    def _trim(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v

    @field_validator("activities")
    @classmethod
    def _trim_labels(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return [label.strip() for label in v]


class MoodOut(CamelModel):
    id: int
    user_id: int
    score: int
    note: Optional[str] = None
    context: Optional[str] = None
    activities: Optional[List[str]] = None
    timestamp: datetime


class MoodCreateResp(CamelModel):
    success: bool = True
    data: MoodOut


ActivityType = Literal["meditation", "exercise", "walking", "reading", "journaling", "therapy"]


class ActivityCreate(CamelModel):
    type: ActivityType
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    duration: Optional[float] = Field(None, ge=0, description="minutes")
    difficulty: Optional[str] = None
    feedback: Optional[str] = None


class ActivityOut(CamelModel):
    id: int
    user_id: int
    type: str
    name: str
    description: Optional[str] = None
    duration: Optional[float] = None
    difficulty: Optional[str] = None
    feedback: Optional[str] = None
    timestamp: datetime


class ActivityCreateResp(CamelModel):
    success: bool = True
    data: ActivityOut


# 상담 채팅
class MessageAnalysis(CamelModel):
    """Structured reading of one user message, produced by the model."""
    emotional_state: str = "neutral"
    themes: List[str] = Field(default_factory=list)
    risk_level: float = 0
    recommended_approach: str = "supportive"
    progress_indicators: List[str] = Field(default_factory=list)


class MessageProgress(CamelModel):
    emotional_state: Optional[str] = None
    risk_level: Optional[float] = None


class ChatMessageOut(CamelModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="meta")


class ChatSessionCreateResp(CamelModel):
    success: bool = True
    session_id: str
    message: str = "Chat session created"


class ChatSessionDetail(CamelModel):
    session_id: str
    start_time: datetime
    status: str
    messages: List[ChatMessageOut]


class ChatSessionSummary(CamelModel):
    session_id: str
    start_time: datetime
    status: str
    message_count: int = 0


class ChatSendReq(CamelModel):
    message: str = Field(..., min_length=1)


class ChatSendResp(CamelModel):
    response: str
    analysis: MessageAnalysis
    metadata: MessageProgress


# 워크플로 러너
class EventEnvelope(BaseModel):
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)


class WorkflowFunctionInfo(BaseModel):
    id: str
    event: str


class WorkflowRunResp(BaseModel):
    event: str
    results: Dict[str, Any]
