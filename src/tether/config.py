"""Server settings, read from arguments or the environment."""

import os
from dataclasses import dataclass

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_PATH = "/ws"
DEFAULT_LOG_LEVEL = "info"


@dataclass
class ServerConfig:
    """Where the WebSocket server listens.

    Entry points typically call ``dotenv.load_dotenv()`` and then
    ``ServerConfig.from_env()`` so settings can live in a ``.env`` file.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    path: str = DEFAULT_PATH
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
        if not self.path.startswith("/"):
            raise ValueError(f"Path must start with '/', got {self.path!r}")

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}{self.path}"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Build settings from TETHER_HOST, TETHER_PORT, TETHER_PATH and
        TETHER_LOG_LEVEL, falling back to the defaults.

        Raises:
            ValueError: If TETHER_PORT is not a valid port number
        """
        port = os.getenv("TETHER_PORT", str(DEFAULT_PORT))
        try:
            port_number = int(port)
        except ValueError as e:
            raise ValueError(f"TETHER_PORT must be an integer, got {port!r}") from e

        return cls(
            host=os.getenv("TETHER_HOST", DEFAULT_HOST),
            port=port_number,
            path=os.getenv("TETHER_PATH", DEFAULT_PATH),
            log_level=os.getenv("TETHER_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        )
