"""Fuzz targets: the entry points a campaign executes inputs against."""

import asyncio
import inspect
import logging
import os
import re
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, FrozenSet, Iterable, Optional, Sequence, Tuple, Union

from ..errors import InvariantViolation, TargetUnreachable
from ..results import Location

logger = logging.getLogger(__name__)


_PANIC_NEW = re.compile(r"panicked at (?P<path>[^\s:']+):(?P<line>\d+):(?P<col>\d+):\s*\n(?P<msg>[^\n]*)")
_PANIC_OLD = re.compile(r"panicked at '(?P<msg>.*?)', (?P<path>[^\s:']+):(?P<line>\d+):(?P<col>\d+)")
_INVARIANT = re.compile(r"\binvariant\b", re.IGNORECASE)
_COVERAGE_LINE = re.compile(r"^coverage:\s*(.*)$", re.MULTILINE)


class ExecutionStatus(Enum):
    """Outcome of one execution."""
    OK = "ok"
    VIOLATION = "violation"
    CRASH = "crash"


@dataclass(frozen=True)
class ExecutionResult:
    """Result of executing one input."""
    status: ExecutionStatus = ExecutionStatus.OK
    message: str = ""
    location: Optional[Location] = None
    coverage: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def failed(self) -> bool:
        return self.status != ExecutionStatus.OK


def parse_panic(text: str) -> Optional[Tuple[Location, str]]:
    """
    Extract the panic location and message from Rust panic output.

    Handles both the current ``panicked at path:line:col:\\nmsg`` form and
    the older ``panicked at 'msg', path:line:col`` form.
    """
    m = _PANIC_NEW.search(text) or _PANIC_OLD.search(text)
    if not m:
        return None
    location = Location(path=m.group("path"), start_line=int(m.group("line")))
    return location, m.group("msg").strip()


def _coverage_from(value: Any) -> FrozenSet[int]:
    if isinstance(value, (set, frozenset, list, tuple)):
        return frozenset(int(v) for v in value)
    return frozenset()


class FuzzTarget(ABC):
    """An entry point that accepts fuzz inputs."""

    def __init__(self, name: str, source_path: Optional[str] = None, entry_point: Optional[str] = None):
        self.name = name
        self.source_path = source_path
        self.entry_point = entry_point or name

    async def prepare(self) -> None:
        """Check that the target can be invoked. Raises TargetUnreachable."""
        return None

    @abstractmethod
    async def execute(self, data: bytes, timeout: Optional[float] = None) -> ExecutionResult:
        """
        Execute one input.

        Args:
            data: Input bytes
            timeout: Optional limit for this execution

        Returns:
            ExecutionResult

        Raises:
            TargetUnreachable: The target could not be invoked
            asyncio.TimeoutError: The execution exceeded ``timeout``
        """
        pass

    @property
    def default_location(self) -> Location:
        """Where findings point when the failure carries no location."""
        return Location(path=self.source_path or self.name, symbol=self.entry_point)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class CallableTarget(FuzzTarget):
    """
    In-process target wrapping a Python callable.

    ``InvariantViolation`` and ``AssertionError`` are violations; any other
    exception is a crash. Synchronous callables run on a worker thread. A
    returned set/list of integers is taken as the coverage signal.
    """

    def __init__(
        self,
        func: Callable[[bytes], Any],
        name: Optional[str] = None,
        source_path: Optional[str] = None,
        entry_point: Optional[str] = None
    ):
        super().__init__(
            name=name or getattr(func, "__name__", "target"),
            source_path=source_path,
            entry_point=entry_point,
        )
        self._func = func
        self._is_async = inspect.iscoroutinefunction(func)

    async def execute(self, data: bytes, timeout: Optional[float] = None) -> ExecutionResult:
        try:
            if self._is_async:
                call = self._func(data)
            else:
                call = asyncio.to_thread(self._func, data)
            value = await (asyncio.wait_for(call, timeout) if timeout else call)
        except (InvariantViolation, AssertionError) as e:
            return ExecutionResult(
                status=ExecutionStatus.VIOLATION,
                message=str(e) or type(e).__name__,
            )
        except TargetUnreachable:
            raise
        except asyncio.TimeoutError:
            raise
        except Exception as e:
            return ExecutionResult(
                status=ExecutionStatus.CRASH,
                message=f"{type(e).__name__}: {e}",
            )
        return ExecutionResult(coverage=_coverage_from(value))


class CommandTarget(FuzzTarget):
    """
    Harness executable fed one input on stdin per execution.

    Exit status 0 is a clean run. A Rust panic or a message mentioning an
    invariant is a violation; any other non-zero exit is a crash. The child
    process is killed when the execution times out or the job is cancelled.
    """

    def __init__(
        self,
        command: Union[str, Path, Sequence[str]],
        name: Optional[str] = None,
        source_path: Optional[str] = None,
        entry_point: Optional[str] = None,
        cwd: Optional[str] = None,
        env: Optional[dict] = None
    ):
        if isinstance(command, (str, Path)):
            command = [str(command)]
        self.command = [str(c) for c in command]
        super().__init__(
            name=name or Path(self.command[0]).name,
            source_path=source_path,
            entry_point=entry_point,
        )
        self.cwd = cwd
        self.env = env

    def _resolve_executable(self) -> str:
        program = self.command[0]
        if os.sep in program or (os.altsep and os.altsep in program):
            if not Path(program).is_file():
                raise TargetUnreachable(self.name, f"{program} does not exist")
            if not os.access(program, os.X_OK):
                raise TargetUnreachable(self.name, f"{program} is not executable")
            return program
        resolved = shutil.which(program)
        if resolved is None:
            raise TargetUnreachable(self.name, f"{program} not found on PATH")
        return resolved

    async def prepare(self) -> None:
        self._resolve_executable()

    async def execute(self, data: bytes, timeout: Optional[float] = None) -> ExecutionResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=self.env,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise TargetUnreachable(self.name, str(e)) from e

        try:
            communicate = proc.communicate(input=data)
            stdout, stderr = await (asyncio.wait_for(communicate, timeout) if timeout else communicate)
        except BaseException:
            # timeout or cancellation: never leave the harness running
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        return self._classify(proc.returncode, stdout.decode("utf-8", "replace"), stderr.decode("utf-8", "replace"))

    @staticmethod
    def _classify(returncode: int, stdout: str, stderr: str) -> ExecutionResult:
        coverage: FrozenSet[int] = frozenset()
        m = _COVERAGE_LINE.search(stdout)
        if m:
            coverage = frozenset(int(v) for v in re.findall(r"\d+", m.group(1)))

        if returncode == 0:
            return ExecutionResult(coverage=coverage)

        output = stderr or stdout
        panic = parse_panic(output)
        if panic:
            location, message = panic
            return ExecutionResult(
                status=ExecutionStatus.VIOLATION,
                message=message or "panic",
                location=location,
                coverage=coverage,
            )

        lines = [line.strip() for line in output.splitlines() if line.strip()]
        detail = lines[-1] if lines else ""
        if _INVARIANT.search(output):
            invariant_lines = [line for line in lines if _INVARIANT.search(line)]
            return ExecutionResult(
                status=ExecutionStatus.VIOLATION,
                message=invariant_lines[0],
                coverage=coverage,
            )
        if returncode < 0:
            message = f"killed by signal {-returncode}"
        else:
            message = f"exit status {returncode}"
        return ExecutionResult(
            status=ExecutionStatus.CRASH,
            message=f"{message}: {detail}" if detail else message,
            coverage=coverage,
        )


def command_targets(paths: Iterable[Path], source_root: Optional[Path] = None) -> list:
    """Wrap harness executables as CommandTargets."""
    targets = []
    for path in paths:
        path = Path(path)
        source = None
        if source_root is not None:
            candidate = Path(source_root) / "fuzz" / "fuzz_targets" / f"{path.name}.rs"
            if candidate.is_file():
                source = candidate.relative_to(source_root).as_posix()
        targets.append(CommandTarget(path, name=path.name, source_path=source))
    return targets
