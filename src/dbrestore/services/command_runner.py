"""Subprocess execution service for dbrestore."""

import codecs
import io
import shutil
import subprocess
import threading
import time
from typing import IO, List, Mapping, Optional

from dbrestore.constants import POLL_INTERVAL_SECONDS, TERMINATE_GRACE_SECONDS
from dbrestore.errors import RestoreCancelledError, RestoreError, ToolNotFoundError
from dbrestore.errors_catalog import actionable_error


class CommandRunner:
    """Runs external commands with consistent error handling and cancellation."""

    def __init__(
        self,
        logger,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        grace_period: float = TERMINATE_GRACE_SECONDS,
        popen=subprocess.Popen,
    ):
        self.logger = logger
        self.poll_interval = poll_interval
        self.grace_period = grace_period
        self.popen = popen

    def run(self, cmd: List[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        """Runs a short read-only command and captures its output."""
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        try:
            return subprocess.run(cmd, text=True, capture_output=True, timeout=timeout)
        except FileNotFoundError as exc:
            raise ToolNotFoundError(actionable_error("tool_not_found", tool=cmd[0])) from exc
        except subprocess.TimeoutExpired as exc:
            raise RestoreError(f"Command timed out after {timeout}s: {cmd_str}") from exc

    def execute(
        self,
        cmd: List[str],
        *,
        display_cmd: Optional[List[str]] = None,
        stdin: Optional[IO] = None,
        input_stream: Optional[IO[bytes]] = None,
        stdout: Optional[IO] = None,
        stderr: Optional[IO] = None,
        capture_stderr: bool = False,
        env: Optional[Mapping[str, str]] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """Runs a long command, bound to a cancellation event and an optional timeout.

        ``input_stream`` is pumped into the child's stdin from a helper thread,
        so arbitrarily large inputs never sit in memory. ``stdin`` instead hands
        an existing file descriptor to the child. ``stdout``/``stderr`` sinks
        without a real file descriptor (``io.StringIO`` and friends) are fed
        through a pipe. Captured stderr is returned on the ``CompletedProcess``.
        """
        cmd_str = " ".join(display_cmd or cmd)
        if cancel_event is not None and cancel_event.is_set():
            raise RestoreCancelledError(f"Cancelled before starting: {cmd_str}")
        self.logger.debug("Executing: %s", cmd_str)

        stdout_target, stdout_sink = self._resolve_sink(stdout)
        if capture_stderr:
            stderr_target, stderr_sink = subprocess.PIPE, None
        else:
            stderr_target, stderr_sink = self._resolve_sink(stderr)

        try:
            process = self.popen(
                cmd,
                stdin=subprocess.PIPE if input_stream is not None else stdin,
                stdout=stdout_target,
                stderr=stderr_target,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as exc:
            raise ToolNotFoundError(actionable_error("tool_not_found", tool=cmd[0])) from exc
        except OSError as exc:
            raise RestoreError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        stderr_chunks: List[bytes] = []
        pump_errors: List[Exception] = []
        pump = None
        drains = []
        if input_stream is not None:
            pump = self._start_thread(self._pump, input_stream, process.stdin, pump_errors)
        if capture_stderr:
            drains.append(self._start_thread(self._drain, process.stderr, stderr_chunks))
        if stdout_sink is not None:
            drains.append(self._start_thread(self._copy, process.stdout, stdout_sink))
        if stderr_sink is not None:
            drains.append(self._start_thread(self._copy, process.stderr, stderr_sink))

        deadline = time.monotonic() + timeout if timeout else None
        try:
            returncode = self._wait(process, cmd_str, cancel_event, deadline, timeout)
        except KeyboardInterrupt:
            self._terminate(process)
            raise RestoreCancelledError(f"Interrupted while running: {cmd_str}") from None
        finally:
            # The pump may be blocked on a source with no data yet; it is a
            # daemon thread, so it is not waited on for long.
            if pump is not None:
                pump.join(timeout=self.poll_interval)
            for drain in drains:
                drain.join(timeout=self.grace_period)

        if pump_errors:
            raise RestoreError(
                f"Failed to stream input into {cmd[0]}: {pump_errors[0]}"
            ) from pump_errors[0]

        captured = b"".join(stderr_chunks).decode("utf-8", errors="replace")
        return subprocess.CompletedProcess(cmd, returncode, stdout=None, stderr=captured)

    def _wait(self, process, cmd_str, cancel_event, deadline, timeout) -> int:
        while True:
            try:
                returncode = process.wait(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                pass
            else:
                if cancel_event is not None and cancel_event.is_set():
                    raise RestoreCancelledError(f"Cancelled while running: {cmd_str}")
                return returncode

            if cancel_event is not None and cancel_event.is_set():
                self.logger.warning("Cancellation requested, terminating: %s", cmd_str)
                self._terminate(process)
                raise RestoreCancelledError(f"Cancelled while running: {cmd_str}")

            if deadline is not None and time.monotonic() >= deadline:
                self.logger.warning("Timeout of %ss reached, terminating: %s", timeout, cmd_str)
                self._terminate(process)
                raise RestoreCancelledError(f"Command timed out after {timeout}s: {cmd_str}")

    def _terminate(self, process):
        process.terminate()
        try:
            process.wait(timeout=self.grace_period)
        except subprocess.TimeoutExpired:
            self.logger.warning("Process %s ignored terminate; killing it.", process.pid)
            process.kill()
            process.wait()

    @staticmethod
    def _start_thread(target, *args) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, daemon=True)
        thread.start()
        return thread

    def _pump(self, source: IO[bytes], sink: IO[bytes], errors: List[Exception]):
        try:
            shutil.copyfileobj(source, sink)
        except (BrokenPipeError, ValueError):
            # The child exited (or was terminated) before consuming all input.
            self.logger.debug("Child process stopped reading its input early.")
        except (OSError, EOFError) as exc:
            errors.append(exc)
        finally:
            try:
                sink.close()
            except OSError:
                pass

    @staticmethod
    def _resolve_sink(sink):
        """Returns the Popen target and, for in-memory sinks, the sink to copy into."""
        if sink is None or isinstance(sink, int):
            return sink, None
        try:
            sink.fileno()
        except (AttributeError, OSError):
            return subprocess.PIPE, sink
        return sink, None

    @staticmethod
    def _copy(source: IO[bytes], sink: IO):
        decoder = None
        if isinstance(sink, io.TextIOBase):
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        for chunk in iter(lambda: source.read(8192), b""):
            sink.write(decoder.decode(chunk) if decoder else chunk)
        if decoder:
            sink.write(decoder.decode(b"", final=True))
        source.close()

    @staticmethod
    def _drain(source: IO[bytes], chunks: List[bytes]):
        for chunk in iter(lambda: source.read(8192), b""):
            chunks.append(chunk)
        source.close()
