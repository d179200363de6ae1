"""Single place where the gpg binary is spawned.

One invocation is one child process. Inside an invocation up to four
threads run side by side so that neither side can block the other on a full
pipe:

- stdin writer: streams the input data (bytes, file handle or file path)
- stdout reader: collects the payload gpg writes
- status reader: collects stderr, which carries ``--status-fd 2`` output
- passphrase writer: writes the passphrase once to its own pipe and closes it

The caller still sees a synchronous call: ``run`` returns only after the
child exited and every stream is drained.

Known limitation of the older stdin approach: when a passphrase and file
content share stdin gpg cannot tell where one ends and the other starts.
The passphrase therefore never goes through stdin (nor argv); it goes
through a separate pipe referenced by ``--passphrase-fd``.
"""

from __future__ import annotations

import contextlib
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from typing import IO, TYPE_CHECKING, BinaryIO

from .errors import GPGError, GPGErrorType
from .types import CmdResult, InvocationRequest, Result, SecureString
from .version import LOOPBACK_MIN_VERSION, Version

if TYPE_CHECKING:
    from .config import GPGConfig

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096


@dataclass
class _Streams:
    """Output of the I/O threads of one invocation."""

    stdout_chunks: list[bytes] = field(default_factory=list)
    status_lines: list[str] = field(default_factory=list)
    read_errors: list[OSError] = field(default_factory=list)
    write_errors: list[OSError] = field(default_factory=list)


def _read_stdout(stream: IO[bytes], streams: _Streams) -> None:
    try:
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            streams.stdout_chunks.append(chunk)
    except (OSError, ValueError) as e:
        streams.read_errors.append(OSError(f"stdout: {e}"))
    finally:
        with contextlib.suppress(OSError):
            stream.close()


def _read_status(stream: IO[bytes], streams: _Streams) -> None:
    try:
        for raw in iter(stream.readline, b""):
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            logger.debug("gpg: %s", line)
            streams.status_lines.append(line)
    except (OSError, ValueError) as e:
        streams.read_errors.append(OSError(f"status channel: {e}"))
    finally:
        with contextlib.suppress(OSError):
            stream.close()


def _write_input(stdin: IO[bytes], source: bytes | BinaryIO, streams: _Streams) -> None:
    sent = 0
    try:
        if isinstance(source, bytes | bytearray | memoryview):
            view = memoryview(source)
            while sent < len(view):
                chunk_view = view[sent : sent + CHUNK_SIZE]
                stdin.write(chunk_view)
                sent += len(chunk_view)
        else:
            while True:
                chunk = source.read(CHUNK_SIZE)
                if not chunk:
                    break
                if isinstance(chunk, str):
                    chunk = chunk.encode("utf-8")
                stdin.write(chunk)
                sent += len(chunk)
        stdin.flush()
    except OSError as e:
        streams.write_errors.append(e)
    finally:
        try:
            stdin.close()
        except OSError as e:
            if not streams.write_errors:
                streams.write_errors.append(e)
        logger.debug("closed stdin, %d bytes sent", sent)


def _write_passphrase(fd: int, passphrase: SecureString, streams: _Streams) -> None:
    buffer = bytearray(passphrase.get().encode("utf-8"))
    buffer += b"\n"
    passphrase.clear()
    try:
        written = 0
        with memoryview(buffer) as view:
            while written < len(view):
                written += os.write(fd, view[written:])
        logger.debug("Wrote passphrase")
    except OSError as e:
        streams.write_errors.append(e)
    finally:
        for i in range(len(buffer)):
            buffer[i] = 0
        os.close(fd)


def _close_fds(*fds: int | None) -> None:
    for fd in fds:
        if fd is not None:
            with contextlib.suppress(OSError):
                os.close(fd)


class ProcessDriver:
    def __init__(
        self,
        gpg_binary: str = "gpg",
        version: Version | None = None,
        keyrings: tuple[str, ...] = (),
        secret_keyrings: tuple[str, ...] = (),
    ) -> None:
        self.gpg_binary = gpg_binary
        self.version = version
        self.keyrings = keyrings
        self.secret_keyrings = secret_keyrings

    @classmethod
    def from_config(cls, config: GPGConfig) -> ProcessDriver:
        return cls(
            gpg_binary=config.gpg_binary,
            version=config.version,
            keyrings=config.keyrings,
            secret_keyrings=config.secret_keyrings,
        )

    def build_args(self, request: InvocationRequest, passphrase_fd: int | None = None) -> list[str]:
        cmd = [
            self.gpg_binary,
            "--batch",
            "--no-tty",
            "--status-fd",
            "2",
            "--homedir",
            str(request.homedir),
        ]
        if self.keyrings:
            cmd.append("--no-default-keyring")
            for keyring in self.keyrings:
                cmd.extend(["--keyring", keyring])
        for keyring in self.secret_keyrings:
            cmd.extend(["--secret-keyring", keyring])
        if passphrase_fd is not None:
            if self.version is None or self.version.at_least(*LOOPBACK_MIN_VERSION):
                cmd.extend(["--pinentry-mode", "loopback"])
            cmd.extend(["--passphrase-fd", str(passphrase_fd)])
        cmd.extend(request.args)
        cmd.extend(request.extra_args)
        return cmd

    def _open_input(self, request: InvocationRequest) -> Result[bytes | BinaryIO | None]:
        if request.data is not None:
            return Result.ok(request.data)
        if request.file is not None:
            return Result.ok(request.file)
        if request.file_path is not None:
            try:
                return Result.ok(open(request.file_path, "rb"))  # noqa: SIM115
            except OSError as e:
                return Result.err(
                    GPGError(
                        GPGErrorType.FILE_NOT_FOUND_ERROR,
                        f"Could not open {request.file_path}: {e}",
                        cause=e,
                    )
                )
        return Result.ok(None)

    def run(self, request: InvocationRequest, timeout: float | None = None) -> Result[CmdResult]:
        source_result = self._open_input(request)
        if source_result.is_err():
            return Result.err(source_result.unwrap_err())
        source = source_result.unwrap()
        opened_here = request.input_kind == "file_path"

        try:
            return self._run(request, source, timeout)
        finally:
            if opened_here and source is not None and not isinstance(source, bytes):
                with contextlib.suppress(OSError):
                    source.close()

    def _run(
        self,
        request: InvocationRequest,
        source: bytes | BinaryIO | None,
        timeout: float | None,
    ) -> Result[CmdResult]:
        read_fd = write_fd = None
        if request.passphrase is not None:
            read_fd, write_fd = os.pipe()

        cmd = self.build_args(request, read_fd)
        logger.debug("Running %s (input: %s)", cmd, request.input_kind)

        env = os.environ.copy()
        if request.env:
            env.update(request.env)

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE if source is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                pass_fds=(read_fd,) if read_fd is not None else (),
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            _close_fds(read_fd, write_fd)
            if request.passphrase is not None:
                request.passphrase.clear()
            return Result.err(
                GPGError(
                    GPGErrorType.FAILED_TO_START_PROCESS,
                    f"Could not start {self.gpg_binary}: {e}",
                    cause=e,
                )
            )
        # The child holds its own copy of the read end now
        _close_fds(read_fd)

        if (
            process.stdout is None
            or process.stderr is None
            or (source is not None and process.stdin is None)
        ):
            process.kill()
            process.wait()
            _close_fds(write_fd)
            return Result.err(
                GPGError(
                    GPGErrorType.FAILED_TO_RETRIEVE_CHILD_PROCESS,
                    f"Lost the pipes of {self.gpg_binary} (pid {process.pid})",
                )
            )

        streams = _Streams()
        threads = [
            threading.Thread(target=_read_stdout, args=(process.stdout, streams), daemon=True),
            threading.Thread(target=_read_status, args=(process.stderr, streams), daemon=True),
        ]
        if write_fd is not None and request.passphrase is not None:
            threads.append(
                threading.Thread(
                    target=_write_passphrase,
                    args=(write_fd, request.passphrase, streams),
                    daemon=True,
                )
            )
        if source is not None and process.stdin is not None:
            threads.append(
                threading.Thread(
                    target=_write_input, args=(process.stdin, source, streams), daemon=True
                )
            )
        for thread in threads:
            thread.start()

        timed_out = False
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            logger.warning("gpg exceeded %ss, terminating pid %d", timeout, process.pid)
            process.kill()
            process.wait()

        for thread in threads:
            thread.join()

        cmd_result = CmdResult(
            ok=process.returncode == 0 and not timed_out,
            returncode=process.returncode,
            stdout=b"".join(streams.stdout_chunks),
            status_lines=tuple(streams.status_lines),
            operation=request.operation,
        )
        logger.debug("%s exited with %s", request.operation, process.returncode)

        if timed_out:
            return Result.err(
                GPGError(
                    GPGErrorType.TIMEOUT_ERROR,
                    f"{request.operation} did not finish within {timeout} seconds",
                    cmd_result=cmd_result,
                )
            )
        if streams.read_errors:
            error = streams.read_errors[0]
            return Result.err(
                GPGError(
                    GPGErrorType.READ_FAIL_ERROR,
                    f"Reading from gpg failed: {error}",
                    cmd_result=cmd_result,
                    cause=error,
                )
            )
        if streams.write_errors:
            error = streams.write_errors[0]
            if isinstance(error, BrokenPipeError) and process.returncode != 0:
                # gpg gave up early; its exit status says why
                logger.debug("Ignoring broken pipe from failed gpg: %s", error)
            else:
                return Result.err(
                    GPGError(
                        GPGErrorType.WRITE_FAIL_ERROR,
                        f"Writing to gpg failed: {error}",
                        cmd_result=cmd_result,
                        cause=error,
                    )
                )

        return Result.ok(cmd_result)
