"""Request bodies accepted at the HTTP boundary.

Start and end requests share one endpoint and are decoded as a tagged
union. The tag is the `kind` field when the body carries one; otherwise a
body naming `sessionId` or `reason` is an end request and anything else is
a start request.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter, ValidationError

from consensus.models import InterjectionKind, Role


class InvalidRequest(Exception):
    """Raised when a request body cannot be decoded."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AppFile(_CamelModel):
    path: str
    content: str


class AppState(_CamelModel):
    name: str | None = None
    files: list[AppFile] = Field(default_factory=list)


class ParticipantSpec(_CamelModel):
    model_id: str = Field(alias="modelId")
    role: Role | None = None


class StartDebateRequest(_CamelModel):
    kind: Literal["start"] = "start"
    app_id: str = Field(alias="appId")
    user_question: str = Field(alias="userQuestion", min_length=1)
    max_rounds: int = Field(default=3, alias="maxRounds", ge=1, le=10)
    participants: list[ParticipantSpec] | None = Field(default=None, min_length=2)
    style: Literal["cooperative", "adversarial"] | None = None
    current_app_state: AppState | None = Field(default=None, alias="currentAppState")


class EndDebateRequest(_CamelModel):
    kind: Literal["end"] = "end"
    session_id: str = Field(alias="sessionId")
    reason: Literal["user-ended", "agreed"]


def _request_kind(body: Any) -> str | None:
    if isinstance(body, BaseModel):
        return getattr(body, "kind", None)
    if not isinstance(body, dict):
        return None
    if "kind" in body:
        kind = body["kind"]
        return kind if isinstance(kind, str) else None
    if "sessionId" in body or "session_id" in body or "reason" in body:
        return "end"
    return "start"


DebateRequest = Annotated[
    Annotated[StartDebateRequest, Tag("start")] | Annotated[EndDebateRequest, Tag("end")],
    Discriminator(_request_kind),
]

_debate_request_adapter: TypeAdapter[DebateRequest] = TypeAdapter(DebateRequest)


class CreateInterjectionRequest(_CamelModel):
    session_id: str = Field(alias="sessionId", min_length=1)
    content: str = Field(min_length=1)
    kind: InterjectionKind | None = Field(default=None, alias="interjectionType")
    target_message_id: str | None = Field(default=None, alias="targetMessageId")


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in exc.errors()
    )


def parse_debate_request(body: Any) -> StartDebateRequest | EndDebateRequest:
    """Decode a raw JSON body into a start or end request.

    Raises:
        InvalidRequest: If the body is not a valid tagged request.
    """
    try:
        return _debate_request_adapter.validate_python(body)
    except ValidationError as exc:
        raise InvalidRequest(_describe(exc)) from exc
