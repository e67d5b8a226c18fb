import asyncio
import sys
from typing import List, Optional, Sequence, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from config.logic import load_and_merge_configs
from config.models import Config
from core.contracts.models import RetrievedContext
from core.documents import load_context_files
from core.formatter.prompt_formatter import BUILTIN_TEMPLATES
from core.session import ChatSession
from utils.errors import ChatPromptException
from utils.logger import setup_logger, logger

EXIT_COMMANDS = ("/exit", "/quit")


def apply_cli_overrides(config: Config, provider: Optional[str] = None, model: Optional[str] = None, family: Optional[str] = None) -> Config:
    """Applies command-line options on top of the loaded configuration."""
    if provider:
        config.model.provider = provider
        logger.info(f"Overriding provider: {provider}")
    if model:
        config.model.name = model
        logger.info(f"Overriding model: {model}")
    if family:
        config.formatter.family = family
        logger.info(f"Overriding prompt family: {family}")
    return config


def load_documents(config: Config, context_files: Sequence[str]) -> List[RetrievedContext]:
    if not context_files:
        return []
    documents = load_context_files(
        context_files,
        chunk_size=config.session.chunk_size,
        chunk_overlap=config.session.chunk_overlap,
    )
    logger.info(f"Loaded {len(documents)} context chunks from {len(context_files)} files")
    return documents


def describe_sources(contexts: Sequence[RetrievedContext]) -> str:
    """Names the files the chunks came from, in first-seen order."""
    return ", ".join(dict.fromkeys(c.file_name for c in contexts))


async def run_turn(console: Console, session: ChatSession, query: str, stream: bool, documents: Sequence[RetrievedContext] = ()):
    contexts = session.retrieve(query, documents) if documents else []
    if contexts:
        console.print(Text(f"Context from: {describe_sources(contexts)}", style="dim"))

    answer = await session.ask(query, contexts, stream=stream)
    if stream:
        async for chunk in answer:
            console.print(Text(chunk), end="")
        console.print()
    else:
        console.print(Text(answer))


async def run_chat_loop(console: Console, session: ChatSession, stream: bool, verbose: bool, documents: Sequence[RetrievedContext] = ()):
    """
    Reads queries until /exit or EOF. One event loop serves the whole
    conversation so the engine's HTTP client can keep its connections.
    """
    while True:
        try:
            query = await asyncio.to_thread(console.input, "[bold green]> [/bold green]")
        except (EOFError, KeyboardInterrupt):
            console.print()
            break

        if query.strip() in EXIT_COMMANDS:
            break
        if not query.strip():
            continue

        try:
            await run_turn(console, session, query, stream, documents)
        except ChatPromptException as e:
            if verbose:
                logger.opt(exception=e).error(f"Turn failed: {e}")
            console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")


@click.group()
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable debug logging.",
)
@click.pass_context
def cli(ctx, verbose: bool):
    """
    Format chat prompts for instruction-tuned models and talk to a local engine.
    """
    setup_logger(log_level="DEBUG" if verbose else "WARNING")
    ctx.obj = {"verbose": verbose}


@cli.command("format")
@click.argument("messages", nargs=-1, required=True)
@click.option("-c", "--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="Path to a custom config file.")
@click.option("--family", type=str, help="Prompt family to use (e.g. 'phi').")
@click.option("--context", "context_files", multiple=True, type=click.Path(exists=True, dir_okay=False), help="Text file to draw context from. Repeatable.")
@click.option("--raw", is_flag=True, default=False, help="Print the prompts exactly, without decoration.")
def format_messages(messages: Tuple[str, ...], config_path: Optional[str], family: Optional[str], context_files: Tuple[str, ...], raw: bool):
    """
    Format MESSAGES as successive turns of one conversation.
    """
    console = Console()
    try:
        config = load_and_merge_configs(custom_config_path=config_path)
        config = apply_cli_overrides(config, family=family)
        session = ChatSession(config)
        documents = load_documents(config, context_files)
        for index, message in enumerate(messages, start=1):
            contexts = session.retrieve(message, documents) if documents else []
            prompt = session.build_prompt(message, contexts)
            if raw:
                click.echo(prompt, nl=False)
            else:
                console.print(Panel(
                    Text(prompt),
                    title=f"[bold cyan]Turn {index}[/bold cyan]",
                    subtitle=Text(f"Context from: {describe_sources(contexts)}") if contexts else None,
                    border_style="cyan",
                    expand=False,
                ))
    except ChatPromptException as e:
        logger.debug(f"Formatting failed: {e}")
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(1)


@cli.command("templates")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="Path to a custom config file.")
def list_templates(config_path: Optional[str]):
    """
    List the known prompt families.
    """
    console = Console()
    try:
        config = load_and_merge_configs(custom_config_path=config_path)
    except ChatPromptException as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(1)

    families = dict(BUILTIN_TEMPLATES)
    families.update(config.templates)

    table = Table(title="Prompt families")
    table.add_column("Name", style="cyan")
    table.add_column("User prefix")
    table.add_column("End marker")
    table.add_column("Assistant header")
    for name in sorted(families):
        template = families[name]
        label = f"{name} (default)" if name == config.formatter.family else name
        table.add_row(
            Text(label),
            Text(repr(template.user_prefix)),
            Text(repr(template.end_marker)),
            Text(repr(template.assistant_header)),
        )
    console.print(table)


@cli.command("chat")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="Path to a custom config file.")
@click.option("--provider", type=str, help="Override the generation engine (e.g. 'local').")
@click.option("--model", type=str, help="Override the model name sent to the engine.")
@click.option("--family", type=str, help="Override the prompt family.")
@click.option("--context", "context_files", multiple=True, type=click.Path(exists=True, dir_okay=False), help="Text file to draw context from. Repeatable.")
@click.option("--no-stream", is_flag=True, default=False, help="Wait for the whole answer instead of streaming it.")
@click.pass_context
def chat(ctx, config_path: Optional[str], provider: Optional[str], model: Optional[str], family: Optional[str], context_files: Tuple[str, ...], no_stream: bool):
    """
    Start an interactive conversation. Type /exit to leave.
    """
    console = Console()
    verbose = ctx.obj.get("verbose", False)
    try:
        config = load_and_merge_configs(custom_config_path=config_path)
        config = apply_cli_overrides(config, provider, model, family)
        session = ChatSession(config)
        documents = load_documents(config, context_files)
    except ChatPromptException as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(1)

    stream = config.model.stream and not no_stream
    console.print(f"[dim]{escape(config.model.provider)} / {escape(config.model.name)} ({escape(config.formatter.family)} prompts). Type /exit to leave.[/dim]")

    try:
        asyncio.run(run_chat_loop(console, session, stream, verbose, documents))
    except KeyboardInterrupt:
        console.print()
    except Exception as e:
        logger.opt(exception=e).error(f"Unexpected error: {e}")
        console.print(f"[bold red]Unexpected error:[/bold red] {escape(str(e))}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
