"""Final synthesis: run the synthesis turn and build the Consensus."""

import logging

from config.config_loader import PromptsConfig
from consensus.models import Consensus, GenerationOptions, Participant, Session
from consensus.prompts import build_synthesis_prompt
from consensus.providers.base import AIProvider
from consensus.turns import TurnError, TurnExecutor

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Unable to generate synthesis. Please review the discussion above."


async def synthesize(
    session: Session,
    executor: TurnExecutor,
    synthesizer: Participant,
    provider: AIProvider | None,
    prompts: PromptsConfig,
    options: GenerationOptions,
    turn_number: int,
) -> Consensus:
    """Run the synthesis turn over the whole transcript.

    Never raises for provider trouble: an unconfigured or failing
    synthesizer yields a Consensus carrying FALLBACK_SUMMARY.
    """
    if provider is None or not provider.is_configured():
        logger.warning("Synthesizer %s is not configured, using fallback summary", synthesizer.model_id)
        return Consensus(summary=FALLBACK_SUMMARY)

    synthesis_prompt = build_synthesis_prompt(prompts, session.question, session.transcript)
    messages = [
        {"role": "system", "content": synthesizer.system_prompt},
        {"role": "user", "content": synthesis_prompt},
    ]

    logger.info("Running synthesis via %s", synthesizer.model_id)
    try:
        entry = await executor.run(
            synthesizer, provider, messages, options, turn_number=turn_number, is_synthesis=True
        )
    except TurnError as exc:
        logger.error("Synthesis failed: %s", exc)
        return Consensus(summary=FALLBACK_SUMMARY)

    if not entry.content.strip():
        logger.warning("Synthesizer %s returned empty content, using fallback summary", synthesizer.model_id)
        return Consensus(summary=FALLBACK_SUMMARY)

    return Consensus(summary=entry.content)
