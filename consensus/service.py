"""Debate service: builds sessions from requests and tracks the running ones."""

import asyncio
import logging
import uuid

from config.config_loader import AppConfig
from consensus.agreement import Classifier, detect_agreement
from consensus.costs import CostAggregator
from consensus.events import FATAL_ERROR, EventSink, EventStream
from consensus.interjections import InterjectionError, InterjectionQueue
from consensus.models import GenerationOptions, Interjection, Participant, Session
from consensus.prompts import build_app_context
from consensus.providers import build_providers
from consensus.providers.base import AIProvider
from consensus.requests import EndDebateRequest, InvalidRequest, ParticipantSpec, StartDebateRequest
from consensus.session import DebateSettings, SessionController

logger = logging.getLogger(__name__)

_FALLBACK_ROLE = "strategic-architect"


class UnknownSession(Exception):
    """Raised when a request names a session that is not running."""


def _new_session_id() -> str:
    return f"debate_{uuid.uuid4().hex[:16]}"


class DebateService:
    """Entry point for starting, ending and steering debates.

    Each started debate runs in its own task; the service only keeps a
    handle on it so end requests and interjections can reach it.
    """

    def __init__(
        self,
        config: AppConfig,
        providers: dict[str, AIProvider] | None = None,
        interjections: InterjectionQueue | None = None,
        classifier: Classifier = detect_agreement,
    ) -> None:
        self._config = config
        self._providers = providers if providers is not None else build_providers(config)
        self.interjections = interjections or InterjectionQueue(ttl_sec=config.defaults.interjection_ttl_sec)
        self._classifier = classifier
        self._sessions: dict[str, SessionController] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def providers(self) -> dict[str, AIProvider]:
        return self._providers

    # -- building ---------------------------------------------------------

    def build_participants(self, specs: list[ParticipantSpec] | None) -> tuple[Participant, ...]:
        """Resolve a requested panel (or the default pair) into Participants.

        Raises:
            InvalidRequest: On unknown or duplicate models, or fewer than two seats.
        """
        default_roles = {seat.model: seat.role for seat in self._config.defaults.default_panel}
        if specs:
            seats = [(s.model_id, s.role or default_roles.get(s.model_id, _FALLBACK_ROLE)) for s in specs]
        else:
            seats = [(seat.model, seat.role) for seat in self._config.defaults.default_panel]

        if len(seats) < 2:
            raise InvalidRequest(f"A debate needs at least 2 participants, got {len(seats)}")
        model_ids = [model_id for model_id, _ in seats]
        if len(set(model_ids)) != len(model_ids):
            raise InvalidRequest("Each model may take only one seat in a debate")

        participants: list[Participant] = []
        for model_id, role in seats:
            model_cfg = self._config.models.get(model_id)
            if model_cfg is None:
                raise InvalidRequest(f"Unknown model: {model_id}")
            participants.append(
                Participant(
                    model_id=model_id,
                    display_name=model_cfg.display_name,
                    role=role,
                    system_prompt=self._config.prompts.personas.get(role, ""),
                )
            )
        return tuple(participants)

    def build_settings(self, request: StartDebateRequest) -> DebateSettings:
        defaults = self._config.defaults
        app_state = request.current_app_state.model_dump() if request.current_app_state else None
        return DebateSettings(
            max_rounds=request.max_rounds,
            style=request.style or defaults.style,
            app_context=build_app_context(self._config.prompts, app_state),
            initial=GenerationOptions(defaults.initial.max_tokens, defaults.initial.temperature),
            review=GenerationOptions(defaults.review.max_tokens, defaults.review.temperature),
            synthesis=GenerationOptions(defaults.synthesis.max_tokens, defaults.synthesis.temperature),
            timeout_sec=defaults.session_timeout_sec,
            cancel_on_disconnect=defaults.cancel_on_disconnect,
        )

    def create_controller(self, request: StartDebateRequest, sink: EventSink) -> SessionController:
        session = Session(
            id=_new_session_id(),
            question=request.user_question,
            participants=self.build_participants(request.participants),
        )
        pricing = {model_id: cfg.pricing for model_id, cfg in self._config.models.items()}
        return SessionController(
            session,
            self._providers,
            EventStream(session.id, sink),
            self.interjections,
            self._config.prompts,
            settings=self.build_settings(request),
            costs=CostAggregator(pricing),
            classifier=self._classifier,
        )

    # -- running ----------------------------------------------------------

    async def run(self, request: StartDebateRequest, sink: EventSink) -> Session:
        """Run a debate to completion in the current task."""
        try:
            controller = self.create_controller(request, sink)
        except InvalidRequest as exc:
            await self.reject(sink, str(exc))
            raise
        self._sessions[controller.session.id] = controller
        try:
            return await controller.run()
        finally:
            self._sessions.pop(controller.session.id, None)

    def start(self, request: StartDebateRequest, sink: EventSink) -> SessionController:
        """Start a debate in a background task and return its controller.

        Raises:
            InvalidRequest: If the requested panel cannot be built.
        """
        self.prune()
        controller = self.create_controller(request, sink)
        session_id = controller.session.id
        self._sessions[session_id] = controller

        async def _drive() -> None:
            try:
                await controller.run()
            finally:
                self._sessions.pop(session_id, None)

        task = asyncio.create_task(_drive(), name=f"debate-{session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(
            "Started %s with %s",
            session_id,
            ", ".join(p.model_id for p in controller.session.participants),
        )
        return controller

    async def reject(self, sink: EventSink, message: str) -> None:
        """Answer a malformed start request with one fatal error and close."""
        logger.warning("Rejecting debate request: %s", message)
        stream = EventStream("", sink)
        await stream.error(FATAL_ERROR, message)
        await stream.close()

    def end(self, request: EndDebateRequest) -> SessionController:
        controller = self._sessions.get(request.session_id)
        if controller is None:
            raise UnknownSession(request.session_id)
        controller.request_end(request.reason)
        return controller

    def get(self, session_id: str) -> SessionController | None:
        return self._sessions.get(session_id)

    def active_sessions(self) -> list[str]:
        return list(self._sessions)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # -- interjection boundary ------------------------------------------

    def create_interjection(
        self,
        session_id: str,
        content: str,
        kind: str | None = None,
        target_message_id: str | None = None,
    ) -> Interjection:
        return self.interjections.create(session_id, content, kind, target_message_id)

    def list_pending(self, session_id: str) -> list[Interjection]:
        try:
            return self.interjections.pending(session_id)
        except InterjectionError:
            return []

    def clear_interjections(self, session_id: str) -> None:
        try:
            self.interjections.clear(session_id)
        except InterjectionError:
            logger.debug("No interjections to clear for %s", session_id)

    def prune(self) -> list[str]:
        return self.interjections.prune()
