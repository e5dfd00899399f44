import asyncio
import logging
import shlex
from typing import Any, Optional, Sequence

from pydantic import BaseModel

from binauthz_demo.core.logger import _m

logger = logging.getLogger(__name__)

# exit status a shell reports for a command that could not be found
COMMAND_NOT_FOUND = 127


class CommandResult(BaseModel):
    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)


class CommandError(RuntimeError):
    """Raised when an external command exits non-zero."""

    def __init__(self, result: CommandResult):
        self.result = result
        detail = result.stderr.strip() or result.stdout.strip() or "<no output>"
        super().__init__(
            f"Command failed with exit code {result.returncode}: {result.command_line}: {detail[:500]}"
        )

    @property
    def returncode(self) -> int:
        return self.result.returncode


class CommandService:
    """Runs external CLIs one at a time and captures their output."""

    async def run(
        self,
        args: Sequence[str],
        check: bool = True,
        extra: Optional[dict[str, Any]] = None,
    ) -> CommandResult:
        extra = extra or {}
        logger.debug(_m(f"run: {shlex.join(args)[:200]}", extra))

        result = await self._execute(list(args))

        if not result.ok:
            log = logger.error if check else logger.debug
            log(
                _m(
                    f"Command failed: {result.command_line}",
                    {**extra, "returncode": result.returncode, "stdout": result.stdout[-500:], "stderr": result.stderr[-500:]},
                )
            )
            if check:
                raise CommandError(result)
        return result

    async def _execute(self, args: list[str]) -> CommandResult:
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            return CommandResult(args=args, returncode=COMMAND_NOT_FOUND, stderr=str(exc))

        stdout, stderr = await process.communicate()
        return CommandResult(
            args=args,
            returncode=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
