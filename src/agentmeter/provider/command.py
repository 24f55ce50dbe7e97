import asyncio
import subprocess
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from agentmeter.errors import SourceUnavailableError

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

# takes argv, returns stdout; raises CalledProcessError on non-zero exit
CommandRunner = Callable[[Sequence[str]], Awaitable[str]]

_SNIPPET_LENGTH = 500


async def run_command(command: "Sequence[str]") -> "str":
    """
    runs a command to completion and returns its stdout.
    """
    proc = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()

    if proc.returncode != 0:
        raise subprocess.CalledProcessError(
            proc.returncode or 1,
            list(command),
            output=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

    return stdout.decode(errors="replace")


async def fetch_json(
    provider: "str",
    command: "Sequence[str]",
    schema: "type[ModelT]",
    runner: "CommandRunner" = run_command,
) -> "ModelT":
    """
    runs a command and validates its JSON stdout against `schema`.
    Every failure mode surfaces as SourceUnavailableError.
    """
    logger.debug("command_run", provider=provider, command=" ".join(command))

    try:
        output = await runner(command)
    except subprocess.CalledProcessError as exc:
        raise SourceUnavailableError(
            provider,
            f"{command[0]} command failed with exit code {exc.returncode}: {exc.stderr}",
        ) from exc
    except OSError as exc:
        raise SourceUnavailableError(provider, f"cannot run {command[0]}: {exc}") from exc

    try:
        return schema.model_validate_json(output)
    except ValidationError as exc:
        snippet = output[:_SNIPPET_LENGTH] + ("..." if len(output) > _SNIPPET_LENGTH else "")
        raise SourceUnavailableError(
            provider,
            f"unexpected output from {' '.join(command)}: "
            f"{exc.error_count()} validation errors, raw output {snippet!r}",
        ) from exc
