"""Process execution: one-shot commands and long-running process handles."""

import subprocess
import threading
import time
from typing import Optional, Dict, List, Callable
from dataclasses import dataclass
from pathlib import Path
import psutil
from .errors import ProcessError, ProcessStartupError, ProcessTimeoutError
from .log import get_logger, log_process_event
from .types import ProcessStats

logger = get_logger(__name__)

LineCallback = Callable[[str], None]
ExitCallback = Callable[[int], None]


@dataclass
class ProcessResult:
    """Result of process execution."""

    returncode: int
    stdout: str
    stderr: str
    duration: float

    @property
    def output(self) -> str:
        """Combined output for error messages."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part).strip()


class ProcessExecutor:
    """Executes one-shot commands with timeout enforcement."""

    def run(
        self,
        command: List[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """Execute a command and capture its output.

        A non-zero exit code is reported in the result, not raised.

        Raises:
            ProcessTimeoutError: If the command does not finish within timeout
            ProcessError: If the command cannot be executed at all
        """
        start_time = time.time()
        log_process_event(logger, "exec.start", command=command, timeout=timeout)
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            duration = time.time() - start_time
            log_process_event(logger, "exec.timeout", duration=duration)
            raise ProcessTimeoutError(
                f"Command {command[0]} timed out after {timeout}s",
                timeout=timeout or 0.0,
                details={"command": command, "duration": duration},
            ) from e
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            duration = time.time() - start_time
            log_process_event(logger, "exec.error", duration=duration, error=str(e))
            raise ProcessError(f"Failed to execute command {command[0]}: {e}") from e

        duration = time.time() - start_time
        if completed.returncode == 0:
            log_process_event(logger, "exec.ok", duration=duration)
        else:
            log_process_event(
                logger,
                "exec.failed",
                return_code=completed.returncode,
                duration=duration,
            )
        return ProcessResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration=duration,
        )


class ProcessHandle:
    """A running OS process with line-wise output capture and exit notification.

    stdout and stderr are read by one thread each; every line is handed to
    ``on_line``. A waiter thread reaps the process, waits for both readers to
    drain and then calls ``on_exit`` exactly once.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        command: List[str],
        name: str,
        on_line: Optional[LineCallback] = None,
        on_exit: Optional[ExitCallback] = None,
    ) -> None:
        self._process = process
        self.command = command
        self.name = name
        self.start_time = time.time()
        self._on_line = on_line
        self._on_exit = on_exit
        self._returncode: Optional[int] = None
        self._exited = threading.Event()
        self._readers: List[threading.Thread] = []

    @classmethod
    def spawn(
        cls,
        command: List[str],
        *,
        name: str,
        on_line: Optional[LineCallback] = None,
        on_exit: Optional[ExitCallback] = None,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> "ProcessHandle":
        """Start ``command`` and begin capturing its output.

        Raises:
            ProcessStartupError: If the process cannot be spawned
        """
        log_process_event(logger, "spawn", process_name=name, command=command)
        logger.debug("Starting %s: %s", name, " ".join(command))
        try:
            process = subprocess.Popen(
                command,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
                start_new_session=True,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            log_process_event(logger, "spawn_failed", process_name=name, error=str(e))
            raise ProcessStartupError(
                f"Failed to start process {name} ({command[0]}): {e}",
                details={"command": command},
            ) from e

        handle = cls(process, command, name, on_line=on_line, on_exit=on_exit)
        handle._start_threads()
        log_process_event(logger, "started", pid=process.pid, process_name=name)
        return handle

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        """Exit code once the process has been reaped, else None."""
        return self._returncode

    def has_exited(self) -> bool:
        """True once the process exited and all output was delivered."""
        return self._exited.is_set()

    def poll(self) -> Optional[int]:
        """Exit code if the process has exited and its output was drained."""
        return self._returncode if self.has_exited() else None

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the process exited (or timeout) and return its exit code."""
        self._exited.wait(timeout)
        return self._returncode

    def send_signal(self, sig: int) -> None:
        """Send a signal to the process; a process that is already gone is ignored."""
        if self.has_exited():
            logger.debug("Not signalling %s: already exited", self.name)
            return
        try:
            self._process.send_signal(sig)
            log_process_event(logger, "signalled", pid=self.pid, signal=int(sig))
        except ProcessLookupError:
            logger.debug("Process %s (pid %s) vanished before signal", self.name, self.pid)

    def stats(self) -> Optional[ProcessStats]:
        """Resource usage of the running process."""
        if self.has_exited():
            return None
        try:
            ps_process = psutil.Process(self.pid)
            memory_info = ps_process.memory_info()
            return ProcessStats(
                pid=self.pid,
                memory_rss=memory_info.rss,
                memory_vms=memory_info.vms,
                cpu_percent=ps_process.cpu_percent(),
                num_threads=ps_process.num_threads(),
                status=ps_process.status(),
            )
        except psutil.NoSuchProcess:
            return None

    def _start_threads(self) -> None:
        for stream_name, stream in (
            ("stdout", self._process.stdout),
            ("stderr", self._process.stderr),
        ):
            if stream is None:
                continue
            reader = threading.Thread(
                target=self._read_stream,
                args=(stream,),
                name=f"OutputReader-{self.name}-{stream_name}",
                daemon=True,
            )
            self._readers.append(reader)
            reader.start()

        waiter = threading.Thread(
            target=self._wait_for_exit,
            name=f"ProcessWaiter-{self.name}",
            daemon=True,
        )
        waiter.start()

    def _read_stream(self, stream) -> None:
        try:
            for line in stream:
                if self._on_line is not None:
                    self._on_line(line.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            logger.debug("Output reader for %s stopped: %s", self.name, e)
        finally:
            try:
                stream.close()
            except OSError:
                pass

    def _wait_for_exit(self) -> None:
        returncode = self._process.wait()
        for reader in self._readers:
            reader.join()
        self._returncode = returncode
        log_process_event(
            logger, "exited", pid=self.pid, process_name=self.name, exit_code=returncode
        )
        try:
            if self._on_exit is not None:
                self._on_exit(returncode)
        finally:
            self._exited.set()
