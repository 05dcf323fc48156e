"""
Config file shared by the harness and the proxy.

    {"Apps": [{"Name": "web", "Ports": [5001, 5002], "Targets": ["127.0.0.1:9001"]}]}

The proxy listens on every port and forwards to the app's targets; the
harness opens one connection per port.
"""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from proxy_bench.settings import MAX_MESSAGES, TARGET_HOST

logger = logging.getLogger("proxy_bench.config")


@dataclass(frozen=True)
class Target:
    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, raw: str) -> "Target":
        host, sep, port = raw.rpartition(":")
        if not sep or not host:
            raise ValueError(f"target must be host:port, got: {raw!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        try:
            return cls(host=host, port=_check_port(int(port)))
        except ValueError as exc:
            raise ValueError(f"invalid port in target: {raw!r}") from exc


@dataclass(frozen=True)
class RunConfig:
    targets: Tuple[Target, ...]
    messages_per_connection: int

    def __post_init__(self):
        if not 0 <= self.messages_per_connection <= MAX_MESSAGES:
            raise ValueError(
                f"messages per connection must be within 0..{MAX_MESSAGES}, "
                f"got {self.messages_per_connection}"
            )
        object.__setattr__(self, "targets", tuple(self.targets))

    @property
    def total_messages(self) -> int:
        return self.messages_per_connection * len(self.targets)


@dataclass(frozen=True)
class AppConfig:
    name: str
    ports: Tuple[int, ...]
    targets: Tuple[Target, ...] = field(default_factory=tuple)


def _check_port(port: int) -> int:
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port out of range: {port}")
    return port


def _parse_app(idx: int, raw: Any) -> AppConfig:
    if not isinstance(raw, dict):
        raise ValueError(f"Apps[{idx}] must be an object")
    ports = raw.get("Ports", [])
    targets = raw.get("Targets", [])
    if not isinstance(ports, list) or not all(isinstance(p, int) and not isinstance(p, bool) for p in ports):
        raise ValueError(f"Apps[{idx}].Ports must be an array of integers")
    if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
        raise ValueError(f"Apps[{idx}].Targets must be an array of host:port strings")
    return AppConfig(
        name=str(raw.get("Name", f"app{idx}")),
        ports=tuple(_check_port(p) for p in ports),
        targets=tuple(Target.parse(t) for t in targets),
    )


def parse_apps(data: Dict[str, Any]) -> List[AppConfig]:
    if not isinstance(data, dict):
        raise ValueError("configuration root must be an object")
    apps = data.get("Apps")
    if not isinstance(apps, list):
        raise ValueError("configuration field Apps must be an array")
    return [_parse_app(i, raw) for i, raw in enumerate(apps)]


def load_apps(path: Union[str, Path]) -> List[AppConfig]:
    path = Path(path)
    with path.open("r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON in {path}: {exc}") from exc
    return parse_apps(data)


def run_config_from_apps(apps: List[AppConfig], messages: int, host: str = TARGET_HOST) -> RunConfig:
    targets = [Target(host, port) for app in apps for port in app.ports]
    return RunConfig(targets=tuple(targets), messages_per_connection=messages)


def load_run_config(path: Union[str, Path], messages: int, host: str = TARGET_HOST) -> RunConfig:
    config = run_config_from_apps(load_apps(path), messages, host=host)
    logger.info(f"using config file: {path}")
    logger.info(f"messages to send per connection: {messages}")
    return config
