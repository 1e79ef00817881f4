from enum import IntEnum

import typer


class ReturnCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    INTERRUPTED = 130


def echo_result(result):
    """Print one line per CRD followed by a summary."""
    for r in result.results:
        line = f"{r.outcome.value:<8} {r.identity}"
        if r.error is not None:
            line += f" ({r.reason})"
        typer.echo(line)
    for identity in result.skipped:
        typer.echo(f"{'skipped':<8} {identity}")
    typer.echo(f"Summary: {result.summary()}")


def exit_command(command, exit_code, exit_msg):
    """
    Exit the command with the appropriate success or error code and message
    """
    if exit_code == ReturnCode.SUCCESS:
        typer.echo(f"{exit_msg}")
    else:
        typer.echo(
            f"'{command}' command failed with {exit_code.name} (code {int(exit_code)}): {exit_msg}",
            err=True,
        )
        raise typer.Exit(code=int(exit_code))
