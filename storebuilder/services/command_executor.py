"""Out-of-process command execution used by version control and hosting calls.

Workflows build a :class:`Command` and hand it to a :class:`CommandExecutor`.
The production executor spawns the program with asyncio so the event loop keeps
serving requests while git or the hosting CLI runs; tests substitute a scripted
executor.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Command:
    """A program invocation with its own timeout."""
    program: str
    args: Tuple[str, ...] = ()
    timeout: Optional[float] = None
    cwd: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    input: Optional[str] = None

    @classmethod
    def of(cls, program: str, *args: str, **options) -> "Command":
        return cls(program=program, args=tuple(args), **options)

    @property
    def argv(self) -> Tuple[str, ...]:
        return (self.program, *self.args)

    def display(self) -> str:
        return " ".join(self.argv)


@dataclass
class CommandResult:
    """Exit status and captured streams of a finished command."""
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout and stderr combined, as most CLIs split messages arbitrarily."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CommandExecutionError(Exception):
    """Raised when a command exits non-zero, times out or cannot be started."""

    def __init__(self, command: Command, result: Optional[CommandResult] = None, message: str = None):
        self.command = command
        self.result = result
        if message is None:
            if result is None:
                message = f"Command could not be started: {command.display()}"
            elif result.timed_out:
                message = f"Command timed out after {command.timeout}s: {command.display()}"
            else:
                detail = (result.stderr or result.stdout).strip()
                message = f"Command failed with exit code {result.exit_code}: {command.display()}"
                if detail:
                    message = f"{message}: {detail}"
        super().__init__(message)


class CommandExecutor(Protocol):
    """Narrow interface the pipeline depends on."""

    async def run(self, command: Command) -> CommandResult:
        ...


@dataclass
class SubprocessExecutor:
    """
    Execute commands with :func:`asyncio.create_subprocess_exec`.

    A command that exceeds its timeout is killed and reported with
    ``timed_out=True``. A program that cannot be found raises
    :class:`CommandExecutionError`.
    """

    default_timeout: Optional[float] = None
    base_env: Dict[str, str] = field(default_factory=dict)

    async def run(self, command: Command) -> CommandResult:
        timeout = command.timeout if command.timeout is not None else self.default_timeout
        env = None
        if command.env or self.base_env:
            env = {**os.environ, **self.base_env, **(command.env or {})}

        logger.debug(f"Running command: {command.display()} (timeout={timeout})")

        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.PIPE if command.input is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=command.cwd,
                env=env,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error(f"Unable to start {command.program}: {e}")
            raise CommandExecutionError(command, None, f"Unable to start {command.program}: {e}") from e

        stdin_data = command.input.encode() if command.input is not None else None
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(stdin_data), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"Command timed out after {timeout}s: {command.display()}")
            return CommandResult(
                exit_code=process.returncode if process.returncode is not None else -1,
                timed_out=True,
            )

        return CommandResult(
            exit_code=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )


async def run_checked(executor: CommandExecutor, command: Command) -> CommandResult:
    """Run ``command`` and raise :class:`CommandExecutionError` unless it succeeded."""
    result = await executor.run(command)
    if not result.ok:
        raise CommandExecutionError(command, result)
    return result
