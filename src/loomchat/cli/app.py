"""Main CLI application using Typer."""
import asyncio
import base64
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..conversation import PERSONAS, ChatSession, ContextPolicy, MessageForest
from ..conversation.personas import DEFAULT_PERSONA_ID, get_persona
from ..errors import DestructiveActionError, LoomChatError
from ..ui import render_forest, render_thread_table
from .providers import configure_logging, get_model, open_backend

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="loomchat",
    help="Threaded conversations with a local language model",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()


@app.callback()
def main_options(
    log_level: str = typer.Option(
        "warning",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, or error"
    ),
):
    """Threaded conversations with a local language model."""
    configure_logging(log_level, console)


def _report_error(action: str, error: BaseException) -> None:
    """Non-blocking notification for failed backend calls."""
    console.print(f"[red]Error: failed to {action}: {error}[/red]")


class StreamPrinter:
    """Prints the in-flight response incrementally as the forest changes."""

    def __init__(self, out: Console) -> None:
        self._out = out
        self._printed = 0

    def __call__(self, forest: MessageForest) -> None:
        node = forest.streaming_node
        if node is None:
            if self._printed:
                self._out.print()
                self._printed = 0
            return

        if self._printed == 0:
            self._out.print("[bold green]Assistant:[/bold green] ", end="")
        new_text = node.content[self._printed:]
        if new_text:
            self._out.print(new_text, end="", markup=False, highlight=False)
            self._printed = len(node.content)


def _encode_files(paths: list[Path] | None) -> list[str] | None:
    if not paths:
        return None
    return [base64.b64encode(path.read_bytes()).decode("ascii") for path in paths]


async def _open_thread(session: ChatSession, thread_id: int) -> None:
    await session.load_threads()
    if not any(t.id == thread_id for t in session.threads):
        console.print(f"[red]Error: thread {thread_id} not found[/red]")
        raise typer.Exit(code=1)
    await session.select_thread(thread_id)


def _show(session: ChatSession, markdown: bool = True) -> None:
    title = next((t.title for t in session.threads if t.id == session.active_thread_id), "Conversation")
    forest = session.forest()
    if not len(forest):
        console.print("[dim]No messages yet.[/dim]")
        return
    console.print(render_forest(forest, title=title, markdown=markdown))


@app.command()
def threads():
    """List conversation threads, newest first."""
    async def _threads():
        async with open_backend() as backend:
            session = ChatSession(backend, notifier=_report_error)
            items = await session.load_threads()
            if not items:
                console.print("[yellow]No threads yet. Create one with: loomchat new[/yellow]")
                return
            console.print(render_thread_table(items))

    asyncio.run(_threads())


@app.command()
def personas():
    """List the available personas."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    for persona in PERSONAS:
        table.add_row(persona.id, persona.name, persona.description)
    console.print(table)


@app.command()
def models():
    """List models available on the local server."""
    async def _models():
        async with open_backend() as backend:
            session = ChatSession(backend)
            names = await session.load_models()
            for name in names:
                console.print(f"[green]+[/green] {name}")

    asyncio.run(_models())


@app.command()
def new(
    title: str | None = typer.Option(None, "--title", "-t", help="Thread title"),
    persona: str = typer.Option(
        DEFAULT_PERSONA_ID,
        "--persona",
        "-p",
        help="Persona whose instructions seed the thread"
    ),
    smart_context: bool = typer.Option(
        False,
        "--smart-context",
        "-s",
        help="Seed the thread with context from other threads"
    ),
    context_thread: list[int] | None = typer.Option(
        None,
        "--context-thread",
        "-c",
        help="Thread to draw context from (repeatable; implies --smart-context)"
    ),
    active: int | None = typer.Option(
        None,
        "--active",
        "-a",
        help="Thread treated as currently open (context fallback)"
    ),
):
    """Create a new thread."""
    try:
        get_persona(persona)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    async def _new():
        async with open_backend() as backend:
            policy = ContextPolicy(
                enabled=smart_context or bool(context_thread),
                source_thread_ids=list(context_thread or []),
            )
            session = ChatSession(
                backend,
                notifier=_report_error,
                persona_id=persona,
                context_policy=policy,
            )
            await session.load_threads()
            if active is not None:
                await session.select_thread(active)

            thread = await session.new_thread(title)
            if thread is None:
                raise typer.Exit(code=1)

            console.print(f"[green]Created thread #{thread.id}: {thread.title}[/green]")
            if policy.enabled and thread.system_prompt and thread.system_prompt != get_persona(persona).system_prompt:
                console.print("[dim]Smart context attached.[/dim]")

    asyncio.run(_new())


@app.command()
def show(
    thread_id: int = typer.Argument(..., help="Thread to display"),
    plain: bool = typer.Option(False, "--plain", help="Do not render markdown"),
):
    """Show a thread as a reply tree."""
    async def _show_thread():
        async with open_backend() as backend:
            session = ChatSession(backend, notifier=_report_error)
            await _open_thread(session, thread_id)
            _show(session, markdown=not plain)

    asyncio.run(_show_thread())


@app.command()
def send(
    thread_id: int = typer.Argument(..., help="Thread to send to"),
    text: str = typer.Argument(..., help="Message text"),
    reply_to: int | None = typer.Option(None, "--reply-to", "-r", help="Message id to reply to"),
    image: list[Path] | None = typer.Option(
        None, "--image", "-i", exists=True, dir_okay=False, help="Image to attach (repeatable)"
    ),
    pdf: list[Path] | None = typer.Option(
        None, "--pdf", exists=True, dir_okay=False, help="PDF whose text is attached (repeatable)"
    ),
    model: str | None = typer.Option(None, "--model", "-m", help="Model to generate with"),
):
    """Send one message and stream the answer."""
    async def _send():
        async with open_backend() as backend:
            session = ChatSession(
                backend,
                notifier=_report_error,
                on_change=StreamPrinter(console),
                model=model or get_model(),
            )
            await _open_thread(session, thread_id)
            ok = await session.send_message(
                text,
                images=_encode_files(image),
                pdfs=_encode_files(pdf),
                reply_to_id=reply_to,
            )
            if not ok:
                raise typer.Exit(code=1)

    asyncio.run(_send())


@app.command()
def regenerate(
    thread_id: int = typer.Argument(..., help="Thread to regenerate in"),
    from_message: int | None = typer.Option(
        None,
        "--from",
        "-f",
        help="Discard this message and all later ones before generating"
    ),
    model: str | None = typer.Option(None, "--model", "-m", help="Model to generate with"),
):
    """Regenerate the last answer, or everything from a given message."""
    async def _regenerate():
        async with open_backend() as backend:
            session = ChatSession(
                backend,
                notifier=_report_error,
                on_change=StreamPrinter(console),
                model=model or get_model(),
            )
            await _open_thread(session, thread_id)
            if from_message is None:
                ok = await session.retry()
            else:
                ok = await session.regenerate(from_message)
            if not ok:
                raise typer.Exit(code=1)

    asyncio.run(_regenerate())


@app.command()
def edit(
    thread_id: int = typer.Argument(..., help="Thread containing the message"),
    message_id: int = typer.Argument(..., help="Message to rewrite"),
    text: str = typer.Argument(..., help="New message text"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model to generate with"),
):
    """Rewrite a message and regenerate the conversation after it."""
    async def _edit():
        async with open_backend() as backend:
            session = ChatSession(
                backend,
                notifier=_report_error,
                on_change=StreamPrinter(console),
                model=model or get_model(),
            )
            await _open_thread(session, thread_id)
            if not await session.edit(message_id, text):
                raise typer.Exit(code=1)

    asyncio.run(_edit())


@app.command()
def rename(
    thread_id: int = typer.Argument(..., help="Thread to rename"),
    title: str = typer.Argument(..., help="New title"),
):
    """Rename a thread."""
    async def _rename():
        async with open_backend() as backend:
            session = ChatSession(backend, notifier=_report_error)
            await session.rename_thread(thread_id, title)

    asyncio.run(_rename())


@app.command()
def archive(thread_id: int = typer.Argument(..., help="Thread to archive")):
    """Hide a thread from the thread list."""
    async def _archive():
        async with open_backend() as backend:
            session = ChatSession(backend, notifier=_report_error)
            await session.archive_thread(thread_id)

    asyncio.run(_archive())


@app.command()
def delete(
    thread_id: int = typer.Argument(..., help="Thread to delete from"),
    message: int | None = typer.Option(
        None,
        "--message",
        "-m",
        help="Delete this message and all later ones instead of the whole thread"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """Delete a thread, or a message and everything after it."""
    async def _delete():
        async with open_backend() as backend:
            session = ChatSession(backend, notifier=_report_error)
            if message is None:
                pending = session.request_delete_thread(thread_id)
            else:
                await _open_thread(session, thread_id)
                pending = session.request_delete_message(message)

            if not yes:
                console.print(f"[yellow]{pending.title}: {pending.message}[/yellow]")
                if not typer.confirm("Are you sure you want to continue?"):
                    session.cancel_confirmation()
                    console.print("[dim]Aborted.[/dim]")
                    return

            try:
                await session.confirm()
            except DestructiveActionError as e:
                console.print(f"[red]Error: {e}[/red]")
                raise typer.Exit(code=1)
            console.print("[green]Deleted.[/green]")

    asyncio.run(_delete())


CHAT_HELP = """[dim]Commands:
  /reply <id> <text>   reply to a specific message
  /retry               regenerate the last answer
  /regen <id>          regenerate from a message
  /edit <id> <text>    rewrite a message and regenerate
  /delete <id>         delete a message and all later ones
  /show                show the reply tree
  exit                 leave[/dim]
"""


async def _chat_command(session: ChatSession, line: str) -> None:
    """Dispatch one slash command of the interactive chat."""
    command, _, rest = line[1:].partition(" ")
    if command == "show":
        _show(session)
    elif command == "retry":
        await session.retry()
    elif command == "reply":
        target, _, text = rest.partition(" ")
        await session.send_message(text, reply_to_id=int(target))
    elif command == "regen":
        await session.regenerate(int(rest))
    elif command == "edit":
        target, _, text = rest.partition(" ")
        await session.edit(int(target), text)
    elif command == "delete":
        session.request_delete_message(int(rest))
        if typer.confirm("Delete this message and all subsequent messages?"):
            try:
                await session.confirm()
            except DestructiveActionError as e:
                console.print(f"[red]Error: {e}[/red]")
        else:
            session.cancel_confirmation()
    else:
        console.print(CHAT_HELP)


@app.command()
def chat(
    thread_id: int = typer.Argument(..., help="Thread to chat in"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model to generate with"),
    reply_to: int | None = typer.Option(
        None,
        "--reply-to",
        "-r",
        help="Message id the first message replies to"
    ),
):
    """Interactive chat in a thread."""
    async def _chat():
        async with open_backend() as backend:
            session = ChatSession(
                backend,
                notifier=_report_error,
                on_change=StreamPrinter(console),
                model=model or get_model(),
            )
            await _open_thread(session, thread_id)

            console.print(f"[bold cyan]Loomchat[/bold cyan] [dim]thread #{thread_id}, model {session.model}[/dim]")
            console.print("[dim]Type /help for commands, 'exit' to leave[/dim]\n")
            _show(session)
            reply_target = reply_to

            while True:
                try:
                    user_input = console.input("[bold yellow]You:[/bold yellow] ")
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                line = user_input.strip()
                if not line:
                    continue
                if line.lower() in ("exit", "quit", "q"):
                    console.print("[dim]Goodbye![/dim]")
                    break

                try:
                    if line.startswith("/"):
                        await _chat_command(session, line)
                    else:
                        await session.send_message(line, reply_to_id=reply_target)
                        reply_target = None
                except ValueError:
                    console.print(CHAT_HELP)
                except LoomChatError as e:
                    console.print(f"[red]Error: {e}[/red]")

    asyncio.run(_chat())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
