import os
import logging
from typing import Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

CONNECT_TIMEOUT = float(os.getenv("CONNECT_TIMEOUT", "3.0"))
IO_TIMEOUT = float(os.getenv("IO_TIMEOUT", "30.0"))
TARGET_HOST = os.getenv("TARGET_HOST", "127.0.0.1")

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_MESSAGES = 10
MAX_MESSAGES = 0xFFFF

PROBE_MESSAGE = b"hello world"
RECV_BUFFER_SIZE = 1024

PROXY_LISTEN_HOST = os.getenv("PROXY_LISTEN_HOST", "localhost")
PROXY_DIAL_TIMEOUT = float(os.getenv("PROXY_DIAL_TIMEOUT", "3.0"))
ADMIN_HOST = os.getenv("ADMIN_HOST", "127.0.0.1")


def io_timeout() -> Optional[float]:
    # 0 disables the per-operation bound
    return IO_TIMEOUT if IO_TIMEOUT > 0 else None


def setup_logging(level: Optional[str] = None):
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)
