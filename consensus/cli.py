"""Click CLI: run one debate in the terminal, or serve the HTTP API."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from consensus.healthcheck import run_health_checks
from consensus.models import Session
from consensus.output import ConsoleSink, save_to_file
from consensus.providers import build_providers
from consensus.providers.base import AIProvider
from consensus.requests import InvalidRequest, StartDebateRequest
from consensus.service import DebateService

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _parse_panel(models_arg: str | None) -> list[dict[str, str]] | None:
    """Parse "model[:role],model[:role]" into participant specs."""
    if not models_arg:
        return None
    specs: list[dict[str, str]] = []
    for item in models_arg.split(","):
        item = item.strip()
        if not item:
            continue
        model_id, _, role = item.partition(":")
        spec = {"modelId": model_id.strip()}
        if role:
            spec["role"] = role.strip()
        specs.append(spec)
    return specs


def _check_panel(providers: dict[str, AIProvider], panel: list[str]) -> None:
    """Ping the panel's providers and ask whether to go on when some fail."""
    console.print("\n[bold]Checking providers...[/bold]")
    selected = {name: providers[name] for name in panel if name in providers}
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(selected))

    failed_names: list[str] = []
    for name in panel:
        ok, err = results.get(name, (False, "unknown model"))
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return

    if len(failed_names) == len(panel):
        console.print("\n[bold red]Error:[/bold red] No panel model passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} model(s) failed:[/yellow] {', '.join(failed_names)}")
    if not click.confirm("Continue anyway? Failed models will be skipped or report errors.", default=True):
        sys.exit(0)
    console.print()


async def _run_single(
    service: DebateService,
    request: StartDebateRequest,
    output_dir: Path,
    verbose: bool,
) -> tuple[Session, Path]:
    """Run one debate with live console output and save the transcript."""
    sink = ConsoleSink(console, show_costs=verbose)
    controller = service.create_controller(request, sink)
    session = controller.session

    console.print(
        f"\n[bold cyan]Consensus[/bold cyan] - {len(session.participants)} models, "
        f"up to {request.max_rounds} rounds"
    )
    console.print("Panel: " + ", ".join(f"{p.display_name} ({p.role_label})" for p in session.participants))
    console.print(f"Synthesizer: {session.participants[0].display_name}")
    question = request.user_question
    console.print(f"Question: [italic]{question[:80]}{'...' if len(question) > 80 else ''}[/italic]\n")

    session = await controller.run()
    saved_path = save_to_file(session, controller.costs.snapshot(), output_dir)
    console.print(f"\n[dim]Outcome: {session.status.value}. Saved to: {saved_path}[/dim]")
    return session, saved_path


def _serve(config: AppConfig, host: str, port: int) -> None:
    import uvicorn

    from consensus.server import create_app

    app = create_app(DebateService(config))
    uvicorn.run(app, host=host, port=port)


@click.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from a text file")
@click.option("--rounds", default=None, type=int, help="Maximum number of rounds (default: from config)")
@click.option("--models", default=None,
              help="Comma-separated panel, each entry model[:role]. First entry synthesizes.")
@click.option("--style", type=click.Choice(["cooperative", "adversarial"]), default=None,
              help="Debate style (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging and running cost lines")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--serve", is_flag=True, default=False, help="Serve the HTTP/SSE API instead")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address for --serve")
@click.option("--port", default=8000, type=int, show_default=True, help="Port for --serve")
def main(
    question: str | None,
    question_file: str | None,
    rounds: int | None,
    models: str | None,
    style: str | None,
    output_path: str | None,
    verbose: bool,
    skip_health_check: bool,
    serve: bool,
    host: str,
    port: int,
) -> None:
    """Consensus -- multi-model debate until the panel agrees.

    \b
    Examples:
      consensus "Should we use REST or GraphQL?" --rounds 2
      consensus "Monorepo vs polyrepo?" --models claude-opus-4,gpt-5,gemini-pro
      consensus "SQL or NoSQL?" --models gpt-5:security-expert,grok:devils-advocate
      consensus --file question.md --style adversarial
      consensus --serve --port 8080
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if serve:
        _serve(config, host, port)
        return

    if question_file:
        question_text = Path(question_file).read_text(encoding="utf-8").strip()
    elif question:
        question_text = question
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument, --file, or --serve.")
        sys.exit(1)

    body: dict = {
        "appId": "cli",
        "userQuestion": question_text,
        "maxRounds": rounds if rounds is not None else config.defaults.max_rounds,
        "style": style or config.defaults.style,
    }
    panel = _parse_panel(models)
    if panel is not None:
        body["participants"] = panel
    try:
        request = StartDebateRequest.model_validate(body)
    except ValidationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    providers = build_providers(config)
    if not any(p.is_configured() for p in providers.values()):
        console.print("[bold red]Error:[/bold red] No providers configured. Check API keys in .env.")
        sys.exit(1)

    service = DebateService(config, providers=providers)
    if not skip_health_check:
        panel_ids = [p["modelId"] for p in panel] if panel else [s.model for s in config.defaults.default_panel]
        _check_panel(providers, panel_ids)

    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    try:
        asyncio.run(_run_single(service, request, output_dir, verbose))
    except InvalidRequest as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
