"""Dataclasses for the debate engine. No I/O, no third-party deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, TypedDict

Role = Literal[
    "strategic-architect",
    "implementation-specialist",
    "security-analyst",
    "ux-advocate",
    "devils-advocate",
    "code-quality-expert",
    "creative-thinker",
    "practical-evaluator",
    "innovation-catalyst",
    "proposer",
]

ROLES: tuple[str, ...] = Role.__args__  # type: ignore[attr-defined]

InterjectionKind = Literal["comment", "steer", "challenge", "clarify"]

INTERJECTION_KINDS: tuple[str, ...] = InterjectionKind.__args__  # type: ignore[attr-defined]


class Message(TypedDict):
    role: str      # "system", "user" or "assistant"
    content: str


@dataclass(frozen=True)
class Participant:
    model_id: str
    display_name: str
    role: str
    system_prompt: str

    @property
    def role_label(self) -> str:
        return self.role.replace("-", " ")


@dataclass(frozen=True)
class GenerationOptions:
    max_tokens: int = 4096
    temperature: float = 0.7


@dataclass(frozen=True)
class TextChunk:
    content: str


@dataclass(frozen=True)
class DoneChunk:
    tokens_used: int | None = None


StreamChunk = TextChunk | DoneChunk


@dataclass(frozen=True)
class TranscriptEntry:
    id: str
    model_id: str
    display_name: str
    role: str
    content: str
    round_number: int
    turn_number: int
    is_agreement: bool
    input_tokens: int
    output_tokens: int
    timestamp: datetime
    is_synthesis: bool = False

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class Interjection:
    id: str
    session_id: str
    content: str
    kind: str = "comment"
    target_message_id: str | None = None
    acknowledged_by: frozenset[str] = frozenset()
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "content": self.content,
            "interjectionType": self.kind,
            "targetMessageId": self.target_message_id,
            "acknowledgedBy": sorted(self.acknowledged_by),
            "timestamp": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ParticipantCost:
    model_id: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class CostSnapshot:
    by_model: tuple[ParticipantCost, ...] = ()
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    def to_dict(self) -> dict:
        return {
            "byModel": {
                p.model_id: {
                    "inputTokens": p.input_tokens,
                    "outputTokens": p.output_tokens,
                    "cost": p.cost,
                }
                for p in self.by_model
            },
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "totalCost": self.total_cost,
        }


@dataclass
class Consensus:
    summary: str
    action_items: list[str] = field(default_factory=list)
    key_decisions: list[str] = field(default_factory=list)
    implementable: bool = True
    implemented_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "actionItems": list(self.action_items),
            "keyDecisions": list(self.key_decisions),
            "implementable": self.implementable,
            "implementedAt": self.implemented_at.isoformat() if self.implemented_at else None,
        }


class SessionStatus(str, Enum):
    STARTING = "starting"
    DEBATING = "debating"
    AGREED = "agreed"
    USER_ENDED = "user-ended"
    COMPLETED = "completed"  # round limit reached without agreement
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self not in (SessionStatus.STARTING, SessionStatus.DEBATING)


_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.STARTING: frozenset({SessionStatus.DEBATING, SessionStatus.ERROR}),
    SessionStatus.DEBATING: frozenset(
        {SessionStatus.AGREED, SessionStatus.USER_ENDED, SessionStatus.COMPLETED, SessionStatus.ERROR}
    ),
    SessionStatus.AGREED: frozenset(),
    SessionStatus.USER_ENDED: frozenset(),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.ERROR: frozenset(),
}


@dataclass
class Session:
    id: str
    question: str
    participants: tuple[Participant, ...]
    status: SessionStatus = SessionStatus.STARTING
    round_number: int = 0
    turn_number: int = 0
    agreement: dict[str, bool] = field(default_factory=dict)
    transcript: list[TranscriptEntry] = field(default_factory=list)
    consensus: Consensus | None = None

    def transition(self, new_status: SessionStatus) -> None:
        """Move the session forward through its state machine.

        Raises:
            ValueError: If the move is not a forward transition.
        """
        if new_status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Illegal session transition {self.status.value} -> {new_status.value}")
        self.status = new_status

    def participant(self, model_id: str) -> Participant:
        for p in self.participants:
            if p.model_id == model_id:
                return p
        raise KeyError(model_id)

    def latest_entry(self, model_id: str) -> TranscriptEntry | None:
        for entry in reversed(self.transcript):
            if entry.model_id == model_id and not entry.is_synthesis:
                return entry
        return None
