"""Driver for the external borrower CLI."""

import asyncio
import contextlib
import logging
import os
import stat
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from borrower_cli_tester.errors import ProcessError
from borrower_cli_tester.run_log import StepLogger

log = logging.getLogger(__name__)

EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass(frozen=True, kw_only=True)
class ProcessOutput:
    """Captured result of a CLI invocation."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        """Whether the process exited with code 0."""
        return self.exit_code == 0


def format_command(
    program: Path | str, args: Sequence[str], env: Mapping[str, str]
) -> str:
    """Reconstruct a shell-like command line for audit logs.

    The result is only logged, never executed.
    """
    parts = [f'{key}="{value}"' for key, value in env.items()]
    parts.append(str(program))
    parts.extend(f'"{arg}"' for arg in args)
    return " ".join(parts)


def resolve_executable(executable: Path) -> Path:
    """Return the absolute path of an existing executable file."""
    try:
        return executable.resolve(strict=True)
    except (FileNotFoundError, RuntimeError) as e:
        raise ProcessError(f"CLI not found at: {executable}") from e


def ensure_executable(path: Path) -> None:
    """Add execute permission bits unless the current user can already run it."""
    if os.access(path, os.X_OK):
        return

    try:
        path.chmod(path.stat().st_mode | EXECUTE_BITS)
    except OSError as e:
        raise ProcessError(
            f"Could not set execute permission on {path}: {e}"
        ) from e


async def invoke(
    executable: Path,
    args: Sequence[str],
    env: Mapping[str, str],
    *,
    log: StepLogger = log,
    timeout: float | None = None,
) -> ProcessOutput:
    """Run the CLI to completion and capture its output.

    A non-zero exit code is returned in the output, not raised.

    Args:
        executable: Path to the CLI, relative paths are resolved first
        args: Arguments in invocation order
        env: Variables added to the inherited environment
        log: Logger receiving the audit command line
        timeout: Seconds before the process is killed (None waits forever)

    Returns:
        Decoded stdout, stderr and the exit code

    Raises:
        ProcessError: If the executable is missing, cannot be made executable,
            fails to spawn or exceeds the timeout

    """
    program = resolve_executable(executable)
    ensure_executable(program)

    log.info("Executing command: %s", format_command(program, args, env))

    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            env={**os.environ, **env},
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProcessError(f"Failed to execute CLI: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except TimeoutError as e:
        await _kill(process)
        raise ProcessError(f"CLI did not finish within {timeout} seconds") from e
    except asyncio.CancelledError:
        await _kill(process)
        raise

    assert process.returncode is not None
    return ProcessOutput(
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        exit_code=process.returncode,
    )


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
