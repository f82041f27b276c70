from abc import ABC, abstractmethod
from typing import Optional, List, BinaryIO, Union
import asyncio
import logging
import os
import sys
import threading

from ybuild.common.config.logging_config import get_logger


logger = get_logger(__name__)


class OutputSink(ABC):
    console: bool = False

    @abstractmethod
    def write(self, data: bytes) -> None:
        raise NotImplementedError("Subclasses must implement write method")

    def flush(self) -> None:
        pass


class ConsoleSink(OutputSink):
    console = True

    def __init__(self, stream: Optional[BinaryIO] = None):
        self._stream = stream if stream is not None else sys.stdout.buffer

    def write(self, data: bytes) -> None:
        self._stream.write(data)
        self._stream.flush()

    def flush(self) -> None:
        self._stream.flush()


class BufferSink(OutputSink):
    def __init__(self):
        self._buffer = bytearray()

    def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace")

    def __len__(self) -> int:
        return len(self._buffer)


class OutputDuplicator:
    """Replays build output to every registered sink as it is produced.

    Commands write into the pipe behind ``write_fd``; a drain task empties the
    read side and fans the bytes out. ``flush()`` returns once everything
    written so far has reached the sinks.
    """

    def __init__(
        self,
        sinks: Optional[List[OutputSink]] = None,
        poll_interval: float = 0.05,
        chunk_size: int = 65536,
    ):
        self._sinks: List[OutputSink] = list(sinks) if sinks else [ConsoleSink()]
        self._poll_interval = poll_interval
        self._chunk_size = chunk_size
        self._read_fd: Optional[int] = None
        self._write_fd: Optional[int] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._lock = threading.RLock()
        self._eof = False

    @classmethod
    def for_build(
        cls,
        capture: bool,
        poll_interval: float = 0.05,
        console: Optional[OutputSink] = None,
    ) -> "OutputDuplicator":
        sinks: List[OutputSink] = [console if console is not None else ConsoleSink()]
        if capture:
            sinks.append(BufferSink())
        return cls(sinks=sinks, poll_interval=poll_interval)

    @property
    def sinks(self) -> List[OutputSink]:
        return list(self._sinks)

    @property
    def buffer(self) -> Optional[BufferSink]:
        for sink in self._sinks:
            if isinstance(sink, BufferSink) and not sink.console:
                return sink
        return None

    @property
    def write_fd(self) -> Optional[int]:
        return self._write_fd

    @property
    def is_running(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    async def start(self) -> None:
        if self._drain_task is not None:
            raise RuntimeError("OutputDuplicator already started")

        self._read_fd, self._write_fd = os.pipe()
        os.set_blocking(self._read_fd, False)
        self._eof = False
        self._drain_task = asyncio.create_task(self._drain_loop())

    async def _drain_loop(self) -> None:
        while True:
            with self._lock:
                self._drain_pipe()
                if self._eof:
                    return
            await asyncio.sleep(self._poll_interval)

    def _drain_pipe(self) -> None:
        if self._read_fd is None or self._eof:
            return

        while True:
            try:
                chunk = os.read(self._read_fd, self._chunk_size)
            except BlockingIOError:
                return
            if not chunk:
                self._eof = True
                return
            self._fan_out(chunk, console=True)

    def _fan_out(self, data: bytes, console: bool) -> None:
        for sink in self._sinks:
            if sink.console and not console:
                continue
            try:
                sink.write(data)
            except (OSError, ValueError) as e:
                logger.debug(f"Output sink {sink.__class__.__name__} rejected write: {e}")

    def write(self, data: Union[bytes, str]) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            self._drain_pipe()
            self._fan_out(data, console=True)

    def write_captured(self, data: Union[bytes, str]) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            self._drain_pipe()
            self._fan_out(data, console=False)

    def flush(self) -> None:
        with self._lock:
            self._drain_pipe()
            for sink in self._sinks:
                sink.flush()

    async def close(self) -> None:
        if self._drain_task is None:
            return

        if self._write_fd is not None:
            os.close(self._write_fd)
            self._write_fd = None

        with self._lock:
            self._drain_pipe()

        if not self._drain_task.done():
            self._drain_task.cancel()
        try:
            await self._drain_task
        except asyncio.CancelledError:
            pass
        self._drain_task = None

        with self._lock:
            # anything a straggling child wrote after the last drain
            self._drain_pipe()
            if self._read_fd is not None:
                os.close(self._read_fd)
                self._read_fd = None
            for sink in self._sinks:
                sink.flush()

    def capture_handler(self, level: int = logging.INFO) -> "CaptureLogHandler":
        return CaptureLogHandler(self, level=level)

    async def __aenter__(self) -> "OutputDuplicator":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()


class CaptureLogHandler(logging.Handler):
    """Copies log records into the non-console sinks of a duplicator."""

    def __init__(self, duplicator: OutputDuplicator, level: int = logging.INFO):
        super().__init__(level=level)
        self._duplicator = duplicator
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            self._duplicator.write_captured(message + "\n")
        except Exception:
            self.handleError(record)
