"""Debate session controller: the round protocol and its state machine.

One controller drives one session from a single task. Turns run strictly
in sequence because the client sees one ordered stream with one active
speaker at a time.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from config.config_loader import PromptsConfig
from consensus.agreement import Classifier, agreement_threshold, detect_agreement
from consensus.costs import CostAggregator
from consensus.events import (
    FATAL_ERROR,
    MODEL_ERROR,
    PROVIDER_NOT_CONFIGURED,
    SESSION_TIMEOUT,
    EventStream,
)
from consensus.interjections import InterjectionQueue, format_context
from consensus.models import (
    GenerationOptions,
    Participant,
    Session,
    SessionStatus,
    TranscriptEntry,
)
from consensus.prompts import build_opening_prompt, build_review_instruction
from consensus.providers.base import AIProvider, ProviderNotConfiguredError
from consensus.synthesis import synthesize
from consensus.turns import SessionCancelled, TurnError, TurnExecutor, build_turn_messages

logger = logging.getLogger(__name__)

END_REASONS: dict[str, SessionStatus] = {
    "user-ended": SessionStatus.USER_ENDED,
    "agreed": SessionStatus.AGREED,
}


@dataclass
class DebateSettings:
    max_rounds: int = 3
    style: str | None = None
    app_context: str = ""
    initial: GenerationOptions = field(default_factory=lambda: GenerationOptions(4096, 0.7))
    review: GenerationOptions = field(default_factory=lambda: GenerationOptions(3072, 0.7))
    synthesis: GenerationOptions = field(default_factory=lambda: GenerationOptions(4096, 0.5))
    timeout_sec: float | None = 300.0
    cancel_on_disconnect: bool = False


class SessionController:
    """Owns one Session and runs it to a terminal state.

    The session always ends with exactly one terminal event, either
    debate_complete or a fatal debate_error, followed by closing the sink.
    """

    def __init__(
        self,
        session: Session,
        providers: dict[str, AIProvider],
        stream: EventStream,
        interjections: InterjectionQueue,
        prompts: PromptsConfig,
        settings: DebateSettings | None = None,
        costs: CostAggregator | None = None,
        classifier: Classifier = detect_agreement,
    ) -> None:
        if settings is None:
            settings = DebateSettings()
        if settings.max_rounds < 1:
            raise ValueError(f"max_rounds must be at least 1, got {settings.max_rounds}")
        self.session = session
        self.costs = costs or CostAggregator()
        self._providers = providers
        self._stream = stream
        self._interjections = interjections
        self._prompts = prompts
        self._settings = settings
        self._threshold = agreement_threshold(len(session.participants))
        self._executor = TurnExecutor(
            session,
            stream,
            self.costs,
            classifier=classifier,
            cancel_on_disconnect=settings.cancel_on_disconnect,
        )
        self._opening_prompt = build_opening_prompt(
            prompts, session.question, settings.app_context, settings.style
        )
        self._skipped: set[str] = set()
        self._agreement_reached = False
        self._end_status: SessionStatus | None = None
        self._mailbox_open = False

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def agreement_reached(self) -> bool:
        return self._agreement_reached

    def request_end(self, reason: str) -> None:
        """Stop issuing turns at the next turn boundary, then synthesize."""
        if reason not in END_REASONS:
            raise ValueError(f"Unknown end reason: {reason}")
        logger.info("End requested for %s: %s", self.session.id, reason)
        self._end_status = END_REASONS[reason]

    async def run(self) -> Session:
        """Run the whole debate. Never raises; failures become events."""
        try:
            if self._settings.timeout_sec:
                await asyncio.wait_for(self._run(), timeout=self._settings.timeout_sec)
            else:
                await self._run()
        except TimeoutError:
            logger.error("Session %s exceeded %ss budget", self.session.id, self._settings.timeout_sec)
            self._fail()
            await self._stream.error(
                SESSION_TIMEOUT, f"Debate exceeded its time budget of {self._settings.timeout_sec}s"
            )
        except SessionCancelled as exc:
            logger.info("Session %s cancelled: %s", self.session.id, exc)
            self._fail()
        except Exception as exc:
            logger.exception("Fatal error in session %s", self.session.id)
            self._fail()
            await self._stream.error(FATAL_ERROR, str(exc) or type(exc).__name__)
        finally:
            if self._mailbox_open:
                self._interjections.close(self.session.id)
            await self._stream.close()
        return self.session

    def _fail(self) -> None:
        if not self.session.status.is_terminal:
            self.session.transition(SessionStatus.ERROR)

    async def _run(self) -> None:
        session = self.session
        self._interjections.open(session.id, [p.model_id for p in session.participants])
        self._mailbox_open = True
        session.agreement = {p.model_id: False for p in session.participants}
        await self._stream.debate_start()
        session.transition(SessionStatus.DEBATING)

        await self._initial_round()
        await self._response_rounds()

        await self._stream.synthesis_start()
        synthesizer = session.participants[0]
        consensus = await synthesize(
            session,
            self._executor,
            synthesizer,
            self._providers.get(synthesizer.model_id),
            self._prompts,
            self._settings.synthesis,
            turn_number=self._next_turn_number(),
        )
        session.consensus = consensus
        await self._stream.synthesis_complete(consensus)

        session.transition(self._outcome())
        await self._stream.debate_complete(consensus, self.costs.snapshot())
        logger.info(
            "Session %s finished: %s after %d turns",
            session.id,
            session.status.value,
            len(session.transcript),
        )

    def _outcome(self) -> SessionStatus:
        if self._end_status is not None:
            return self._end_status
        if self._agreement_reached:
            return SessionStatus.AGREED
        return SessionStatus.COMPLETED

    def _should_stop(self) -> bool:
        """True once no further turns should be issued.

        Raises SessionCancelled when the client is gone and the session is
        configured to stop with it.
        """
        if self._settings.cancel_on_disconnect and self._stream.disconnected:
            raise SessionCancelled("client disconnected between turns")
        return self._agreement_reached or self._end_status is not None

    def _next_turn_number(self) -> int:
        turn_number = self.session.turn_number
        self.session.turn_number += 1
        return turn_number

    async def _initial_round(self) -> None:
        self.session.round_number = 0
        for participant in self.session.participants:
            if self._should_stop():
                return
            provider = self._providers.get(participant.model_id)
            if provider is None or not provider.is_configured():
                await self._skip(participant)
                continue
            messages = build_turn_messages(self._prompts, participant, self._opening_prompt, [])
            await self._take_turn(participant, provider, messages, self._settings.initial)

    async def _response_rounds(self) -> None:
        for round_number in range(1, self._settings.max_rounds):
            if self._should_stop():
                return
            self.session.round_number = round_number
            logger.info("Session %s: starting round %d", self.session.id, round_number)
            for participant in self.session.participants:
                if self._should_stop():
                    return
                if participant.model_id in self._skipped:
                    continue
                others = self._latest_from_others(participant)
                if not others:
                    logger.debug("No one else has spoken yet, skipping %s", participant.model_id)
                    continue
                await self._review_turn(participant, others)

    def _latest_from_others(self, participant: Participant) -> list[TranscriptEntry]:
        latest = (self.session.latest_entry(p.model_id) for p in self.session.participants
                  if p.model_id != participant.model_id)
        return [entry for entry in latest if entry is not None]

    async def _review_turn(self, participant: Participant, others: list[TranscriptEntry]) -> None:
        provider = self._providers[participant.model_id]
        pending = self._interjections.pending_for(self.session.id, participant.model_id)
        instruction = build_review_instruction(
            self._prompts,
            [self.session.participant(e.model_id) for e in others],
            format_context(pending),
        )
        messages = build_turn_messages(
            self._prompts, participant, self._opening_prompt, self.session.transcript, instruction
        )
        entry = await self._take_turn(participant, provider, messages, self._settings.review)
        if entry is None:
            return
        for interjection in pending:
            self._interjections.acknowledge(self.session.id, interjection.id, participant.model_id)

    async def _take_turn(
        self,
        participant: Participant,
        provider: AIProvider,
        messages: list,
        options: GenerationOptions,
    ) -> TranscriptEntry | None:
        try:
            entry = await self._executor.run(
                participant, provider, messages, options, turn_number=self._next_turn_number()
            )
        except TurnError as exc:
            if isinstance(exc.cause, ProviderNotConfiguredError):
                await self._skip(participant)
            else:
                await self._stream.error(MODEL_ERROR, str(exc))
            return None

        self.session.agreement[participant.model_id] = entry.is_agreement
        await self._check_agreement()
        return entry

    async def _skip(self, participant: Participant) -> None:
        logger.warning("Skipping %s: provider not configured", participant.model_id)
        self._skipped.add(participant.model_id)
        self._interjections.deactivate(self.session.id, participant.model_id)
        await self._stream.error(
            PROVIDER_NOT_CONFIGURED,
            f"{participant.display_name} is not configured. Please add the API key.",
        )

    async def _check_agreement(self) -> None:
        if self._agreement_reached:
            return
        agreeing = sum(1 for flag in self.session.agreement.values() if flag)
        if agreeing < self._threshold:
            return
        self._agreement_reached = True
        total = len(self.session.participants)
        if total == 2:
            reason = "Both models expressed agreement"
        else:
            reason = f"{agreeing} of {total} participants expressed agreement"
        logger.info("Session %s: %s", self.session.id, reason)
        await self._stream.agreement_detected(reason)
