"""
External process runner.

``SubprocessRunner.run(argv, cwd=...)`` spawns one process while holding a
``ProcessSlots`` slot, captures stdout/stderr into temporary files and reads
back at most ``max_output_bytes`` of each. There is no timeout unless one is
configured; a started process otherwise runs to completion.

A missing executable surfaces as ``ToolUnavailableError`` rather than a bare
``FileNotFoundError`` so the request surface can answer 503.
"""

from __future__ import annotations

import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Optional, Protocol, Sequence, Union

from ..concurrency import ProcessSlots
from ..errors import ToolUnavailableError
from ..logging import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]

# Flag prefixes whose values are secrets (snarkjs contribution entropy).
SECRET_FLAGS = ("-e=", "--entropy=")


def redact_argv(argv: Sequence[str]) -> List[str]:
    out = []
    for arg in argv:
        arg = str(arg)
        for flag in SECRET_FLAGS:
            if arg.startswith(flag):
                arg = flag + "***"
                break
        out.append(arg)
    return out


@dataclass
class ProcessResult:
    argv: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: float = 0.0
    truncated: bool = False
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout followed by stderr, the way a terminal would show them."""
        if self.stdout and self.stderr:
            return self.stdout.rstrip("\n") + "\n" + self.stderr
        return self.stdout or self.stderr

    def lines(self) -> list:
        return [ln for ln in self.output.splitlines() if ln.strip()]


class ProcessRunner(Protocol):
    def run(self, argv: Sequence[str], *, cwd: Optional[PathLike] = None) -> ProcessResult:
        ...


def _read_bounded(fh: IO[bytes], limit: int) -> tuple[str, bool]:
    fh.seek(0, 2)
    size = fh.tell()
    fh.seek(0)
    data = fh.read(limit)
    return data.decode("utf-8", errors="replace"), size > limit


class SubprocessRunner:
    def __init__(
        self,
        slots: Optional[ProcessSlots] = None,
        *,
        max_output_bytes: int = 10 * 1024 * 1024,
        timeout: Optional[float] = None,
    ) -> None:
        self.slots = slots or ProcessSlots()
        self.max_output_bytes = max_output_bytes
        self.timeout = timeout

    def run(self, argv: Sequence[str], *, cwd: Optional[PathLike] = None) -> ProcessResult:
        argv = [str(a) for a in argv]
        with self.slots.acquire(), tempfile.TemporaryFile() as out, tempfile.TemporaryFile() as err:
            log.debug("process_spawn", argv=redact_argv(argv), cwd=str(cwd) if cwd else None)
            t0 = time.perf_counter()
            try:
                proc = subprocess.Popen(argv, cwd=str(cwd) if cwd else None, stdout=out, stderr=err)
            except FileNotFoundError as e:
                raise ToolUnavailableError(
                    f"Executable not found: {argv[0]}",
                    details={"argv": redact_argv(argv)},
                ) from e
            except PermissionError as e:
                raise ToolUnavailableError(
                    f"Executable not runnable: {argv[0]}",
                    details={"argv": redact_argv(argv)},
                ) from e

            timed_out = False
            try:
                proc.wait(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
                timed_out = True
            duration_ms = (time.perf_counter() - t0) * 1000.0

            stdout, trunc_out = _read_bounded(out, self.max_output_bytes)
            stderr, trunc_err = _read_bounded(err, self.max_output_bytes)
            if timed_out:
                stderr += f"\nerror: process timed out after {self.timeout}s"

        result = ProcessResult(
            argv=argv,
            returncode=proc.returncode,
            stdout=stdout,
            stderr=stderr,
            duration_ms=duration_ms,
            truncated=trunc_out or trunc_err,
            timed_out=timed_out,
        )
        log.debug(
            "process_exit",
            tool=Path(argv[0]).name,
            returncode=result.returncode,
            duration_ms=round(duration_ms, 1),
            truncated=result.truncated,
        )
        return result


__all__ = ["ProcessResult", "ProcessRunner", "SubprocessRunner", "redact_argv"]
