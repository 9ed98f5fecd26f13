"""Per-session mailbox of human interjections.

The queue is shared between the task driving a debate and the HTTP
boundary where a human posts comments, so every read and write goes
through a per-session lock. Interjections are immutable snapshots;
acknowledging one swaps in a new snapshot.
"""

import dataclasses
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field

from consensus.models import INTERJECTION_KINDS, Interjection

logger = logging.getLogger(__name__)

# Rendering order and labels for format_context().
_KIND_LABELS: dict[str, str] = {
    "comment": "User Comment",
    "steer": "User Direction",
    "challenge": "User Challenge",
    "clarify": "Clarification Request",
}


class InterjectionError(Exception):
    """Raised for invalid interjections or unknown sessions/participants."""


@dataclass
class _SessionMailbox:
    participants: frozenset[str]
    active: set[str]
    items: list[Interjection] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)
    touched_at: float = field(default_factory=time.monotonic)


def _new_id() -> str:
    return f"interject_{uuid.uuid4().hex[:12]}"


class InterjectionQueue:
    """Explicit store of interjections keyed by session id.

    Lifecycle: open() when a session starts, close() when it ends.
    prune() drops mailboxes that have been idle longer than ttl_sec, for
    sessions whose owner never called close().
    """

    def __init__(self, ttl_sec: float = 3600.0) -> None:
        self._ttl_sec = ttl_sec
        self._registry_lock = threading.Lock()
        self._mailboxes: dict[str, _SessionMailbox] = {}

    # -- lifecycle --------------------------------------------------------

    def open(self, session_id: str, participant_ids: list[str]) -> None:
        with self._registry_lock:
            if session_id in self._mailboxes:
                raise InterjectionError(f"Session already open: {session_id}")
            ids = frozenset(participant_ids)
            self._mailboxes[session_id] = _SessionMailbox(participants=ids, active=set(ids))
        logger.debug("Interjection mailbox opened for %s", session_id)

    def close(self, session_id: str) -> None:
        with self._registry_lock:
            self._mailboxes.pop(session_id, None)
        logger.debug("Interjection mailbox closed for %s", session_id)

    def is_open(self, session_id: str) -> bool:
        with self._registry_lock:
            return session_id in self._mailboxes

    def prune(self, now: float | None = None) -> list[str]:
        """Close mailboxes idle for longer than the TTL. Returns their ids."""
        now = time.monotonic() if now is None else now
        with self._registry_lock:
            expired = [
                sid for sid, box in self._mailboxes.items()
                if now - box.touched_at > self._ttl_sec
            ]
            for sid in expired:
                del self._mailboxes[sid]
        if expired:
            logger.info("Pruned %d idle interjection mailboxes", len(expired))
        return expired

    def _mailbox(self, session_id: str) -> _SessionMailbox:
        with self._registry_lock:
            box = self._mailboxes.get(session_id)
        if box is None:
            raise InterjectionError(f"No active session: {session_id}")
        return box

    # -- writes -----------------------------------------------------------

    def enqueue(self, session_id: str, interjection: Interjection) -> None:
        if interjection.session_id != session_id:
            raise InterjectionError("Interjection belongs to a different session")
        box = self._mailbox(session_id)
        with box.lock:
            box.items.append(interjection)
            box.touched_at = time.monotonic()

    def create(
        self,
        session_id: str,
        content: str,
        kind: str | None = None,
        target_message_id: str | None = None,
    ) -> Interjection:
        content = content.strip() if content else ""
        if not content:
            raise InterjectionError("content is required")
        kind = kind or "comment"
        if kind not in INTERJECTION_KINDS:
            raise InterjectionError(
                f"Invalid interjection kind '{kind}'. Must be one of: {', '.join(INTERJECTION_KINDS)}"
            )
        interjection = Interjection(
            id=_new_id(),
            session_id=session_id,
            content=content,
            kind=kind,
            target_message_id=target_message_id,
        )
        self.enqueue(session_id, interjection)
        logger.info("Interjection %s (%s) queued for %s", interjection.id, kind, session_id)
        return interjection

    def acknowledge(self, session_id: str, interjection_id: str, participant_id: str) -> None:
        """Record that a participant has seen an interjection. Idempotent.

        An interjection cleared since it was read is ignored.
        """
        box = self._mailbox(session_id)
        if participant_id not in box.participants:
            raise InterjectionError(f"{participant_id} is not a participant of {session_id}")
        with box.lock:
            for i, item in enumerate(box.items):
                if item.id == interjection_id:
                    if participant_id not in item.acknowledged_by:
                        box.items[i] = dataclasses.replace(
                            item, acknowledged_by=item.acknowledged_by | {participant_id}
                        )
                    box.touched_at = time.monotonic()
                    return
        logger.debug("Interjection %s no longer queued for %s", interjection_id, session_id)

    def deactivate(self, session_id: str, participant_id: str) -> None:
        """Stop waiting on a participant that will take no more turns."""
        box = self._mailbox(session_id)
        with box.lock:
            box.active.discard(participant_id)

    def clear(self, session_id: str) -> None:
        box = self._mailbox(session_id)
        with box.lock:
            box.items.clear()

    # -- reads ------------------------------------------------------------

    def all(self, session_id: str) -> list[Interjection]:
        box = self._mailbox(session_id)
        with box.lock:
            return list(box.items)

    def pending(self, session_id: str) -> list[Interjection]:
        """Interjections not yet acknowledged by every active participant."""
        box = self._mailbox(session_id)
        with box.lock:
            return [item for item in box.items if not box.active <= item.acknowledged_by]

    def pending_for(self, session_id: str, participant_id: str) -> list[Interjection]:
        """Interjections this participant has not yet acknowledged."""
        box = self._mailbox(session_id)
        with box.lock:
            return [item for item in box.items if participant_id not in item.acknowledged_by]


def format_context(interjections: list[Interjection]) -> str:
    """Render interjections as a labeled block for a turn's instruction."""
    if not interjections:
        return ""

    items: list[str] = []
    for kind, label in _KIND_LABELS.items():
        for item in interjections:
            if item.kind != kind:
                continue
            target = " (re: previous message)" if item.target_message_id else ""
            items.append(f"**{label}{target}:** {item.content}")

    heading = "User Interjections" if len(interjections) > 1 else "User Interjection"
    body = "\n\n".join(items)
    return (
        f"---\n## {heading}\n\n{body}\n\n"
        "Please acknowledge and address the user's input in your response.\n---\n"
    )
