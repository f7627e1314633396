"""Command-line entry point.

Usage:
    claude-agent-bridge "What does this repo do?"
    claude-agent-bridge --json "List the TODOs" > messages.jsonl
    echo "Explain main.py" | claude-agent-bridge -
    claude-agent-bridge --model sonnet --max-turns 3 --cwd ./project "Fix the tests"
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click

from ._version import __version__
from .errors import ClaudeAgentError
from .messages import AssistantMessage, Message, ResultMessage, SystemMessage
from .options import PERMISSION_MODES, Options
from .query import query


def format_message(message: Message) -> str | None:
    """Human-readable rendering of a message, or None to print nothing."""
    if isinstance(message, AssistantMessage):
        lines = [message.text] if message.text else []
        lines += [f"[tool] {block.name}" for block in message.tool_uses]
        return "\n".join(lines) or None
    if isinstance(message, ResultMessage):
        cost = f"${message.total_cost_usd:.4f}" if message.total_cost_usd is not None else "n/a"
        return (
            f"--- {message.subtype}: {message.num_turns} turns, "
            f"{message.duration_ms}ms, cost {cost}"
        )
    if isinstance(message, SystemMessage) and message.subtype == "init":
        return f"--- session {message.data.get('session_id', '?')}"
    return None


async def _run(prompt: str, options: Options, as_json: bool) -> int:
    exit_code = 0
    async for message in query(prompt, options=options):
        if as_json:
            click.echo(json.dumps(message.model_dump(mode="json"), ensure_ascii=False))
        else:
            text = format_message(message)
            if text:
                err = isinstance(message, ResultMessage | SystemMessage)
                click.echo(text, err=err)
        if isinstance(message, ResultMessage) and message.is_error:
            exit_code = 1
    return exit_code


@click.command()
@click.argument("prompt")
@click.option("--json", "as_json", is_flag=True, help="Print each message as a JSON line")
@click.option("--model", help="Model to use")
@click.option("--cwd", type=click.Path(file_okay=False), help="Working directory for the CLI")
@click.option(
    "--permission-mode",
    type=click.Choice(PERMISSION_MODES),
    help="Permission mode for tool use",
)
@click.option("--max-turns", type=click.IntRange(min=1), help="Maximum agent turns")
@click.option("--cli-path", help="Path to the claude binary")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="claude-agent-bridge")
def main(
    prompt: str,
    as_json: bool,
    model: str | None,
    cwd: str | None,
    permission_mode: str | None,
    max_turns: int | None,
    cli_path: str | None,
    verbose: bool,
) -> None:
    """Run PROMPT through the Claude Code CLI and print the replies.

    Pass - as PROMPT to read it from stdin.
    """
    # Messages go to stdout; logs go to stderr
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if prompt == "-":
        prompt = sys.stdin.read()
    if not prompt.strip():
        raise click.UsageError("PROMPT is empty")

    try:
        options = Options(
            model=model,
            cwd=cwd,
            permission_mode=permission_mode,
            max_turns=max_turns,
            cli_path=cli_path,
        )
        exit_code = asyncio.run(_run(prompt, options, as_json))
    except ClaudeAgentError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(130)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
