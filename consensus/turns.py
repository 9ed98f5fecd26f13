"""Run one participant's turn: build context, stream the provider, finalize the entry."""

import logging
import math
import uuid
from datetime import datetime

from config.config_loader import PromptsConfig
from consensus.agreement import Classifier, detect_agreement
from consensus.costs import CostAggregator
from consensus.events import EventStream
from consensus.models import (
    DoneChunk,
    GenerationOptions,
    Message,
    Participant,
    Session,
    TextChunk,
    TranscriptEntry,
)
from consensus.prompts import build_other_model_context
from consensus.providers.base import AIProvider

logger = logging.getLogger(__name__)

_CHARS_PER_TOKEN = 4


class TurnError(Exception):
    """A single turn failed; the debate can continue without it.

    The turn's model_start has already gone out and no model_complete
    follows; the controller reports the failure as a MODEL_ERROR event.
    """

    def __init__(self, participant: Participant, cause: BaseException) -> None:
        self.participant = participant
        self.cause = cause
        super().__init__(f"{participant.display_name} encountered an error: {cause}")


class SessionCancelled(Exception):
    """The client went away and the session is configured to stop with it."""


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


def estimate_message_tokens(messages: list[Message]) -> int:
    return estimate_tokens("".join(m["content"] for m in messages))


def build_turn_messages(
    prompts: PromptsConfig,
    participant: Participant,
    opening_prompt: str,
    transcript: list[TranscriptEntry],
    instruction: str | None = None,
) -> list[Message]:
    """Context for one turn, from the speaker's point of view.

    The speaker's own earlier turns are replayed as assistant messages;
    everyone else's are attributed user messages.
    """
    messages: list[Message] = [
        {"role": "system", "content": participant.system_prompt},
        {"role": "user", "content": opening_prompt},
    ]
    for entry in transcript:
        if entry.is_synthesis:
            continue
        if entry.model_id == participant.model_id:
            messages.append({"role": "assistant", "content": entry.content})
        else:
            messages.append({"role": "user", "content": build_other_model_context(prompts, entry)})
    if instruction:
        messages.append({"role": "user", "content": instruction})
    return messages


class TurnExecutor:
    """Drives single turns for one session.

    A successful turn appends its entry to the session transcript and
    records usage; a failed turn leaves both untouched.
    """

    def __init__(
        self,
        session: Session,
        stream: EventStream,
        costs: CostAggregator,
        classifier: Classifier = detect_agreement,
        cancel_on_disconnect: bool = False,
    ) -> None:
        self._session = session
        self._stream = stream
        self._costs = costs
        self._classifier = classifier
        self._cancel_on_disconnect = cancel_on_disconnect

    async def run(
        self,
        participant: Participant,
        provider: AIProvider,
        messages: list[Message],
        options: GenerationOptions,
        turn_number: int,
        is_synthesis: bool = False,
    ) -> TranscriptEntry:
        """Run one turn and return its finalized transcript entry.

        Raises:
            TurnError: If the provider stream fails; partial text is discarded.
            SessionCancelled: If the client disconnected and cancel_on_disconnect is set.
        """
        await self._stream.model_start(participant, turn_number)

        parts: list[str] = []
        output_tokens: int | None = None
        chunks = provider.stream(messages, options)
        try:
            async for chunk in chunks:
                if isinstance(chunk, TextChunk):
                    parts.append(chunk.content)
                    await self._stream.model_chunk(participant, chunk.content)
                    if self._cancel_on_disconnect and self._stream.disconnected:
                        raise SessionCancelled(f"client disconnected during {participant.model_id} turn")
                elif isinstance(chunk, DoneChunk):
                    output_tokens = chunk.tokens_used
        except SessionCancelled:
            raise
        except Exception as exc:
            logger.warning("Turn %d by %s failed: %s", turn_number, participant.model_id, exc)
            raise TurnError(participant, exc) from exc
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        content = "".join(parts)
        input_tokens = estimate_message_tokens(messages)
        if output_tokens is None:
            output_tokens = estimate_tokens(content)

        entry = TranscriptEntry(
            id=f"msg_{uuid.uuid4().hex[:12]}",
            model_id=participant.model_id,
            display_name=participant.display_name,
            role=participant.role,
            content=content,
            round_number=self._session.round_number,
            turn_number=turn_number,
            is_agreement=False if is_synthesis else self._classifier(content),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            timestamp=datetime.now(),
            is_synthesis=is_synthesis,
        )
        self._costs.add_usage(participant.model_id, input_tokens, output_tokens)
        self._session.transcript.append(entry)

        logger.info(
            "Turn %d by %s: %d chars, %d in / %d out tokens, agreement=%s",
            turn_number,
            participant.model_id,
            len(content),
            input_tokens,
            output_tokens,
            entry.is_agreement,
        )

        await self._stream.model_complete(participant, turn_number)
        await self._stream.cost_update(self._costs.snapshot())
        return entry
