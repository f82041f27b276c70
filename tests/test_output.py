import asyncio
import logging
import os

import pytest

from ybuild.builder.output import BufferSink, OutputDuplicator
from tests.fakes import ConsoleBuffer


pytestmark = pytest.mark.asyncio


async def test_interleaved_writes_round_trip():
    console = ConsoleBuffer()
    capture = BufferSink()
    duplicator = OutputDuplicator([console, capture], poll_interval=0.005)
    expected = bytearray()

    async with duplicator:
        for i in range(300):
            chunk = f"line {i}\n".encode()
            if i % 3 == 0:
                duplicator.write(chunk)
            else:
                os.write(duplicator.write_fd, chunk)
            expected.extend(chunk)
            if i % 10 == 0:
                await asyncio.sleep(0)

    assert console.getvalue() == bytes(expected)
    assert capture.getvalue() == bytes(expected)


async def test_flush_drains_pending_pipe_output():
    capture = BufferSink()
    duplicator = OutputDuplicator([ConsoleBuffer(), capture], poll_interval=60)

    await duplicator.start()
    try:
        os.write(duplicator.write_fd, b"pending\n")
        duplicator.flush()
        assert capture.getvalue() == b"pending\n"
    finally:
        await duplicator.close()


async def test_captured_writes_skip_console():
    console = ConsoleBuffer()
    duplicator = OutputDuplicator.for_build(capture=True, console=console)

    async with duplicator:
        duplicator.write_captured("only in the log\n")
        duplicator.write("everywhere\n")

    assert console.getvalue() == b"everywhere\n"
    assert duplicator.buffer.getvalue() == b"only in the log\neverywhere\n"


async def test_capture_handler_copies_log_records():
    duplicator = OutputDuplicator.for_build(capture=True, console=ConsoleBuffer())
    test_logger = logging.getLogger("ybuild.tests.capture")
    test_logger.setLevel(logging.INFO)

    async with duplicator:
        handler = duplicator.capture_handler()
        test_logger.addHandler(handler)
        try:
            test_logger.info("Setting FOO = bar")
            test_logger.debug("not captured")
        finally:
            test_logger.removeHandler(handler)

    assert duplicator.buffer.text() == "Setting FOO = bar\n"


async def test_no_buffer_without_capture():
    duplicator = OutputDuplicator.for_build(capture=False, console=ConsoleBuffer())
    assert duplicator.buffer is None


async def test_start_twice_rejected():
    duplicator = OutputDuplicator([ConsoleBuffer()])
    await duplicator.start()
    try:
        with pytest.raises(RuntimeError):
            await duplicator.start()
    finally:
        await duplicator.close()
    assert not duplicator.is_running
    assert duplicator.write_fd is None


async def test_for_build_keeps_an_empty_console_sink():
    console = ConsoleBuffer()

    duplicator = OutputDuplicator.for_build(capture=False, console=console)

    assert duplicator.sinks == [console]
    assert duplicator.buffer is None
