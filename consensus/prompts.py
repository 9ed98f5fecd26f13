"""Build debate prompts from the templates in settings.yaml."""

from config.config_loader import PromptsConfig
from consensus.models import Participant, TranscriptEntry

_MAX_CONTEXT_FILES = 5
_MAX_FILE_CHARS = 2000


def build_app_context(prompts: PromptsConfig, app_state: dict | None) -> str:
    """Render the user's current app files as context, or "" when there are none."""
    if not app_state or not app_state.get("files"):
        return ""
    files = app_state["files"]
    contents = "\n\n".join(
        f"--- {f['path']} ---\n{f['content'][:_MAX_FILE_CHARS]}\n--- END {f['path']} ---"
        for f in files[:_MAX_CONTEXT_FILES]
    )
    return prompts.app_context.format(
        name=app_state.get("name") or "Unnamed App",
        file_list=", ".join(f["path"] for f in files),
        files=contents,
    )


def build_opening_prompt(
    prompts: PromptsConfig,
    question: str,
    app_context: str = "",
    style: str | None = None,
) -> str:
    style_text = prompts.styles.get(style, "") if style else ""
    return prompts.initial.format(
        question=question,
        app_context=f"{app_context.rstrip()}\n\n" if app_context else "",
        style=f"{style_text.rstrip()}\n\n" if style_text else "",
    )


def build_other_model_context(prompts: PromptsConfig, entry: TranscriptEntry) -> str:
    return prompts.other_model.format(
        name=entry.display_name,
        role=entry.role.replace("-", " "),
        content=entry.content,
    )


def build_review_instruction(prompts: PromptsConfig, others: list[Participant], interjections: str = "") -> str:
    """Instruction closing a review turn; pending interjections go first."""
    if len(others) == 1:
        names = others[0].display_name
    else:
        names = ", ".join(p.display_name for p in others[:-1]) + f" and {others[-1].display_name}"
    instruction = prompts.review.format(names=names)
    if interjections:
        return f"{interjections}\n{instruction}"
    return instruction


def format_full_transcript(transcript: list[TranscriptEntry]) -> str:
    """Format all debate turns into one block for synthesis."""
    return "\n\n---\n\n".join(
        f"**{e.display_name}** ({e.role.replace('-', ' ')}):\n{e.content}"
        for e in transcript
        if not e.is_synthesis
    )


def build_synthesis_prompt(prompts: PromptsConfig, question: str, transcript: list[TranscriptEntry]) -> str:
    return prompts.synthesis.format(
        question=question,
        full_transcript=format_full_transcript(transcript),
    )
