"""
Load-generation harness.

- One session per target, each on its own connection.
- A session sends the probe, waits for the reply, records the round trip
  in whole milliseconds and repeats, strictly one round at a time.
- Samples flow into a shared LatencyChannel; the orchestrator drains it
  only after every session has finished.
- The first failing session cancels the rest and aborts the run.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from proxy_bench.channel import LatencyChannel, LatencySender
from proxy_bench.config import RunConfig, Target
from proxy_bench.metrics import M_ROUND_TRIP, M_ROUNDS, M_SESSION_FAILURES
from proxy_bench.settings import CONNECT_TIMEOUT, PROBE_MESSAGE, RECV_BUFFER_SIZE, io_timeout
from proxy_bench.stats import LatencyReport, summarize

logger = logging.getLogger("proxy_bench.client")

Clock = Callable[[], float]


class SessionError(Exception):
    kind = "session"

    def __init__(self, target: Target, message: str):
        super().__init__(f"{target}: {self.kind} error: {message}")
        self.target = target


class ConnectError(SessionError):
    kind = "connect"

    def __init__(self, target: Target, cause: BaseException, timed_out: bool = False):
        reason = "timed out" if timed_out else (str(cause) or cause.__class__.__name__)
        super().__init__(target, reason)
        self.cause = cause
        self.timed_out = timed_out


class TransferError(SessionError):
    kind = "transfer"

    def __init__(self, target: Target, stage: str, cause: BaseException):
        super().__init__(target, f"{stage} failed: {str(cause) or cause.__class__.__name__}")
        self.stage = stage
        self.cause = cause


@dataclass(frozen=True)
class BenchmarkResult:
    report: LatencyReport
    elapsed: float
    total_messages: int

    @property
    def rps(self) -> float:
        if self.elapsed <= 0:
            return 0.0
        return self.total_messages / self.elapsed


async def connect(target: Target, timeout: Optional[float] = None):
    if timeout is None:
        timeout = CONNECT_TIMEOUT
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(target.host, target.port), timeout=timeout
        )
    except asyncio.TimeoutError as exc:
        logger.info(f"connect to {target} timed out")
        raise ConnectError(target, exc, timed_out=True) from exc
    except OSError as exc:
        logger.error(f"unknown connect error to {target}: '{exc}'")
        raise ConnectError(target, exc) from exc
    logger.debug(f"connected to {target}")
    return reader, writer


async def _close(writer: asyncio.StreamWriter):
    writer.close()
    try:
        await writer.wait_closed()
    except (OSError, ConnectionError):
        pass


async def run_session(
    target: Target,
    config: RunConfig,
    sender: LatencySender,
    clock: Clock = time.perf_counter,
) -> int:
    """Run the probe loop against one target. Returns the number of rounds completed."""
    with sender:
        if config.messages_per_connection == 0:
            return 0
        reader, writer = await connect(target)
        timeout = io_timeout()
        rounds = 0
        try:
            while rounds < config.messages_per_connection:
                start = clock()
                try:
                    writer.write(PROBE_MESSAGE)
                    await asyncio.wait_for(writer.drain(), timeout=timeout)
                except (OSError, asyncio.TimeoutError) as exc:
                    raise TransferError(target, "write", exc) from exc
                try:
                    data = await asyncio.wait_for(reader.read(RECV_BUFFER_SIZE), timeout=timeout)
                except (OSError, asyncio.TimeoutError) as exc:
                    raise TransferError(target, "read", exc) from exc
                if not data:
                    raise TransferError(target, "read", ConnectionResetError("connection closed by peer"))
                elapsed = clock() - start
                latency_ms = int(elapsed * 1000)
                logger.debug(f"received {data!r} from {target} elapsed {latency_ms}")
                M_ROUNDS.inc()
                M_ROUND_TRIP.observe(elapsed)
                await sender.put(latency_ms)
                rounds += 1
        finally:
            await _close(writer)
        return rounds


async def _join_all(tasks: List[asyncio.Task]):
    if not tasks:
        return
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    failed = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
    if not failed:
        return
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    raise failed[0].exception()


async def run_benchmark(config: RunConfig, clock: Clock = time.perf_counter) -> BenchmarkResult:
    channel = LatencyChannel()
    start = clock()
    with channel.sender() as root:
        tasks = [
            asyncio.create_task(run_session(target, config, root.clone(), clock), name=f"session-{target}")
            for target in config.targets
        ]
        try:
            await _join_all(tasks)
        except SessionError as exc:
            M_SESSION_FAILURES.labels(kind=exc.kind).inc()
            logger.error(f"run aborted: {exc}")
            raise
    elapsed = clock() - start
    logger.debug("all sessions completed")

    samples = await channel.drain()
    return BenchmarkResult(report=summarize(samples), elapsed=elapsed, total_messages=config.total_messages)
