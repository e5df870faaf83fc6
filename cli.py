"""
Command line entry point.

    c-chat encode "hello world"
    c-chat decode 31373 995
    c-chat count - < prompt.txt
    c-chat session new work --vendor anthropic
    c-chat session append work "Remember: answer in French" --pin
    c-chat session window work --prompt "What's next?"
"""
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click

from session import Message
from session import Role
from session import Session
from session import Vendor
from session_store import SessionStore
from settings import Settings
from tokenizer import Tokenizer
from tokenizer import get_gpt2_tokenizer
from vendors import get_adapter

logger = logging.getLogger(__name__)

# every library error (InvalidVocabulary, BudgetExceeded, ...) is a ValueError or LookupError
USER_ERRORS = (ValueError, LookupError, OSError)


class Context:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._tokenizer: Optional[Tokenizer] = None

    @property
    def tokenizer(self) -> Tokenizer:
        if self._tokenizer is None:
            logger.info("Loading vocabulary from %s", self.settings.vocab_dir)
            self._tokenizer = run(get_gpt2_tokenizer, self.settings.vocab_dir)
        return self._tokenizer

    @property
    def store(self) -> SessionStore:
        return SessionStore(self.settings.sessions_dir)


pass_context = click.make_pass_decorator(Context)


def read_prompt(prompt: str) -> str:
    if prompt == "-":
        logger.info("Reading prompt from stdin...")
        return click.get_text_stream("stdin").read().strip()
    return prompt


def run(fn, *args):
    try:
        return fn(*args)
    except USER_ERRORS as e:
        raise click.ClickException(str(e)) from e


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--log-level", default=None, help="Logging level (default: $C_LOG_LEVEL or WARNING).")
@click.option("--vocab-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding encoder.json and vocab.bpe.")
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Base directory for session storage (default: $C_ROOT or $HOME).")
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str], vocab_dir: Optional[Path], root: Optional[Path]) -> None:
    """Token-aware chat sessions for LLM vendor APIs."""
    settings = Settings.from_env()
    if root is not None:
        settings = replace(settings, root=root)
    if vocab_dir is not None:
        settings = replace(settings, vocab_dir=vocab_dir)
    if log_level is not None:
        settings = replace(settings, log_level=log_level.upper())
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = Context(settings)


# --- Tokenizer commands ---

@main.command()
@click.argument("prompt")
@pass_context
def encode(ctx: Context, prompt: str) -> None:
    """Print the token ids of PROMPT ("-" reads stdin)."""
    ids = run(ctx.tokenizer.encode, read_prompt(prompt))
    click.echo(" ".join(str(i) for i in ids))


@main.command()
@click.argument("ids", nargs=-1, type=int, required=True)
@pass_context
def decode(ctx: Context, ids) -> None:
    """Print the text of a sequence of token IDS."""
    click.echo(run(ctx.tokenizer.decode, list(ids)))


@main.command()
@click.argument("prompt")
@pass_context
def count(ctx: Context, prompt: str) -> None:
    """Print the number of tokens in PROMPT ("-" reads stdin)."""
    click.echo(run(ctx.tokenizer.count_tokens, read_prompt(prompt)))


# --- Session commands ---

@main.group("session")
def session_group() -> None:
    """Create, inspect and trim stored sessions."""


def _print_message(index: int, message: Message) -> None:
    marker = "*" if message.pin else " "
    click.echo(f"{index:>3}{marker} {message.role.value}: {message.content}")


@session_group.command("new")
@click.argument("session_id")
@click.option("--vendor", type=click.Choice([v.value for v in Vendor]), default=Vendor.OPENAI.value,
              show_default=True)
@click.option("--model", default=None, help="Model name; also sets the default token budget.")
@click.option("--max-tokens", "max_tokens", type=click.IntRange(min=1), default=None,
              help="Maximum number of tokens supported by the model.")
@click.option("--max-history", "max_history", type=click.IntRange(min=1), default=None,
              help="Trim the history to this many tokens instead of the model maximum.")
@pass_context
def session_new(ctx: Context, session_id: str, vendor: str, model: Optional[str], max_tokens: Optional[int],
                max_history: Optional[int]) -> None:
    """Create an empty session SESSION_ID."""
    if ctx.store.exists(session_id):
        raise click.ClickException(f"session {session_id!r} already exists")
    session = get_adapter(Vendor(vendor)).new_session(session_id, model=model, max_supported_tokens=max_tokens)
    if max_history is not None:
        session.set_option("max_history", max_history)
    path = run(ctx.store.save, session)
    click.echo(f"Created {path}")


def _load(ctx: Context, session_id: str) -> Session:
    return run(ctx.store.load, session_id)


@session_group.command("append")
@click.argument("session_id")
@click.argument("text")
@click.option("--role", type=click.Choice([r.value for r in Role]), default=Role.HUMAN.value, show_default=True)
@click.option("--pin", is_flag=True, help="Never trim this message from the history.")
@pass_context
def session_append(ctx: Context, session_id: str, text: str, role: str, pin: bool) -> None:
    """Append TEXT ("-" reads stdin) to the history of SESSION_ID."""
    session = _load(ctx, session_id)
    session.append(Message(content=read_prompt(text), role=Role(role), pin=pin))
    run(ctx.store.save, session)


@session_group.command("show")
@click.argument("session_id")
@pass_context
def session_show(ctx: Context, session_id: str) -> None:
    """Print the full history of SESSION_ID; pinned messages are marked with '*'."""
    session = _load(ctx, session_id)
    click.echo(f"{session.id} ({session.vendor.value}, {session.max_supported_tokens} tokens)")
    for index, message in enumerate(session.history):
        _print_message(index, message)


@session_group.command("pin")
@click.argument("session_id")
@click.argument("index", type=int)
@click.option("--unpin", is_flag=True, help="Clear the pin instead of setting it.")
@pass_context
def session_pin(ctx: Context, session_id: str, index: int, unpin: bool) -> None:
    """Pin (or unpin) the message at INDEX."""
    session = _load(ctx, session_id)
    if not -len(session.history) <= index < len(session.history):
        raise click.BadParameter(f"session has {len(session.history)} messages", param_hint="INDEX")
    session.pin(index, pinned=not unpin)
    run(ctx.store.save, session)


@session_group.command("window")
@click.argument("session_id")
@click.option("--prompt", default="", help="New prompt that will be sent with the history.")
@click.option("--overhead", type=click.IntRange(min=0), default=None,
              help="Override the vendor's overhead estimate.")
@pass_context
def session_window(ctx: Context, session_id: str, prompt: str, overhead: Optional[int]) -> None:
    """Print the messages of SESSION_ID that fit in its token budget."""
    session = _load(ctx, session_id)
    counter = ctx.tokenizer.count_tokens
    prompt = read_prompt(prompt) if prompt else prompt
    if overhead is None:
        window = run(get_adapter(session.vendor).submission_window, session, counter, prompt)
    else:
        window = run(session.submission_window, counter, prompt, overhead)

    kept = {id(m) for m in window}
    for index, message in enumerate(session.history):
        if id(message) in kept:
            _print_message(index, message)
    click.echo(f"{len(window)} of {len(session.history)} messages, "
               f"{sum(counter(m.content) for m in window)} history tokens")


if __name__ == '__main__':
    main()
