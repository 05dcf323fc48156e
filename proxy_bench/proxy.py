"""
TCP forwarding proxy, the server side that the harness benchmarks.

Every configured port of an app gets a listener. Each accepted connection is
tunnelled to one of the app's targets, picked round-robin; when a target
cannot be dialled the next one is tried, once per target, without delay.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from proxy_bench.config import AppConfig, Target
from proxy_bench.metrics import M_PROXY_ACTIVE, M_PROXY_BYTES, M_PROXY_CONNECTIONS, M_PROXY_DIAL_FAILURES
from proxy_bench.settings import PROXY_DIAL_TIMEOUT, PROXY_LISTEN_HOST

logger = logging.getLogger("proxy_bench.proxy")

COPY_BUFFER_SIZE = 32 * 1024


class TargetPool:
    def __init__(self, targets):
        self._targets: Tuple[Target, ...] = tuple(targets)
        self._current = 0

    def __len__(self) -> int:
        return len(self._targets)

    def next(self) -> Optional[Target]:
        # single event loop, no await between read and update
        if not self._targets:
            return None
        target = self._targets[self._current % len(self._targets)]
        self._current = (self._current + 1) % len(self._targets)
        return target


async def _pump(reader: asyncio.StreamReader, writer: asyncio.StreamWriter, direction: str):
    while True:
        data = await reader.read(COPY_BUFFER_SIZE)
        if not data:
            break
        writer.write(data)
        await writer.drain()
        M_PROXY_BYTES.labels(direction=direction).inc(len(data))


async def _close(writer: asyncio.StreamWriter):
    writer.close()
    try:
        await writer.wait_closed()
    except (OSError, ConnectionError):
        pass


class ProxyServer:
    def __init__(self, apps: List[AppConfig], host: str = PROXY_LISTEN_HOST, dial_timeout: float = PROXY_DIAL_TIMEOUT):
        self.apps = list(apps)
        self.host = host
        self.dial_timeout = dial_timeout
        self._pools: Dict[str, TargetPool] = {app.name: TargetPool(app.targets) for app in self.apps}
        self._servers: List[Tuple[AppConfig, asyncio.AbstractServer]] = []
        self._tunnels: Set[asyncio.Task] = set()
        self._running = False

    async def start(self):
        if self._running:
            return
        try:
            for app in self.apps:
                for port in app.ports:
                    server = await asyncio.start_server(self._handler(app), self.host, port)
                    self._servers.append((app, server))
                    logger.info(f"starting listener for {app.name} on {self.host}:{_bound_ports(server)}")
        except OSError:
            await self.stop()
            raise
        self._running = True
        logger.info("ProxyServer started")

    async def serve_forever(self):
        await self.start()
        await asyncio.gather(*(server.serve_forever() for _, server in self._servers))

    async def stop(self):
        self._running = False
        for app, server in self._servers:
            server.close()
        for task in list(self._tunnels):
            task.cancel()
        await asyncio.gather(*self._tunnels, return_exceptions=True)
        for app, server in self._servers:
            await server.wait_closed()
        self._servers = []
        logger.info("proxy shutdown")

    def bound_ports(self) -> Dict[str, List[int]]:
        ports: Dict[str, List[int]] = {}
        for app, server in self._servers:
            ports.setdefault(app.name, []).extend(_bound_ports(server))
        return ports

    def health(self) -> Dict[str, object]:
        bound = self.bound_ports()
        return {
            "status": "ok" if self._running else "stopped",
            "listeners": len(self._servers),
            "active_tunnels": len(self._tunnels),
            "apps": [
                {"name": app.name, "ports": bound.get(app.name, []), "targets": [str(t) for t in app.targets]}
                for app in self.apps
            ],
        }

    def _handler(self, app: AppConfig):
        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
            task = asyncio.current_task()
            self._tunnels.add(task)
            try:
                await self._serve(app, reader, writer)
            finally:
                self._tunnels.discard(task)
        return handle

    async def _dial(self, app: AppConfig):
        pool = self._pools[app.name]
        for _ in range(len(pool)):
            target = pool.next()
            try:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(target.host, target.port), timeout=self.dial_timeout
                )
                return target, reader, writer
            except (OSError, asyncio.TimeoutError) as exc:
                M_PROXY_DIAL_FAILURES.inc()
                logger.warning(f"target {target} dial: {exc!r}")
        return None

    async def _serve(self, app: AppConfig, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        peer = writer.get_extra_info("peername")
        M_PROXY_CONNECTIONS.inc()
        logger.info(f"new connection {peer} -> {app.name}")
        try:
            dialed = await self._dial(app)
            if dialed is None:
                logger.error(f"cannot connect to any target of {app.name}")
                return
            target, t_reader, t_writer = dialed
            logger.info(f"connected to target {target}")
            M_PROXY_ACTIVE.inc()
            pumps = [
                asyncio.create_task(_pump(reader, t_writer, "upstream")),
                asyncio.create_task(_pump(t_reader, writer, "downstream")),
            ]
            try:
                done, pending = await asyncio.wait(pumps, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if not task.cancelled() and task.exception() is not None:
                        logger.info(f"tunnel {peer} <-> {target}: {task.exception()!r}")
            finally:
                for task in pumps:
                    task.cancel()
                await asyncio.gather(*pumps, return_exceptions=True)
                await _close(t_writer)
                M_PROXY_ACTIVE.dec()
                logger.info(f"closing tunnel: {peer} <-> {target}")
        finally:
            await _close(writer)


def _bound_ports(server: asyncio.AbstractServer) -> List[int]:
    # with port 0 a dual-stack host gets a different ephemeral port per address
    ports: List[int] = []
    for sock in server.sockets:
        port = sock.getsockname()[1]
        if port not in ports:
            ports.append(port)
    return ports
