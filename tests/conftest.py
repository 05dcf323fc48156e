import asyncio
import socket
import socketserver
import threading

import pytest
import pytest_asyncio

from proxy_bench.config import Target

HOST = "127.0.0.1"


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((HOST, 0))
        return sock.getsockname()[1]


async def handle_echo(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
    try:
        while True:
            data = await reader.read(4096)
            if not data:
                break
            writer.write(data)
            await writer.drain()
    except (asyncio.CancelledError, ConnectionError):
        pass
    finally:
        writer.close()


@pytest_asyncio.fixture
async def start_server():
    """Factory: start an asyncio TCP server with the given handler, return its Target."""
    servers = []

    async def _start(handler=handle_echo) -> Target:
        server = await asyncio.start_server(handler, HOST, 0)
        servers.append(server)
        return Target(HOST, server.sockets[0].getsockname()[1])

    yield _start

    for server in servers:
        server.close()
    for server in servers:
        await asyncio.wait_for(server.wait_closed(), timeout=5)


class _EchoHandler(socketserver.BaseRequestHandler):
    def handle(self):
        while True:
            data = self.request.recv(4096)
            if not data:
                break
            self.request.sendall(data)


@pytest.fixture
def threaded_echo():
    """Echo server on a background thread, for code that calls asyncio.run itself."""
    server = socketserver.ThreadingTCPServer((HOST, 0), _EchoHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()
