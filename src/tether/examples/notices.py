"""Notification pop-ups and busy/idle indicators over a tether session.

The page sends "send-notice" to have the server show a notice, and
"long-task" to start slow work. While the work runs the server emits "busy",
and "idle" once it is done.

Run with ``python -m tether.examples.notices``.
"""

import asyncio
import logging
from typing import Any

from dotenv import load_dotenv

from tether.config import ServerConfig
from tether.registry import Session
from tether.server.app import TetherServer

logger = logging.getLogger(__name__)


def setup_notices(session: Session) -> None:
    """Register the notice and long-task handlers on a new session."""
    background: set[asyncio.Task[None]] = set()

    async def send_notice(payload: Any) -> None:
        content = payload.get("content", "") if isinstance(payload, dict) else payload
        await session.emit("notice", {"content": content, "type": "message"})

    async def run_task(seconds: float) -> None:
        await session.emit("busy", {"task": "long-task"})
        await asyncio.sleep(seconds)
        if not session.closed:
            await session.emit("idle", {"task": "long-task"})

    def long_task(payload: Any) -> None:
        # Keep the channel free for other messages while the work runs
        seconds = float(payload.get("seconds", 1)) if isinstance(payload, dict) else 1.0
        task = asyncio.create_task(run_task(seconds))
        background.add(task)
        task.add_done_callback(background.discard)

    session.on("send-notice", send_notice)
    session.on("long-task", long_task)


async def main():
    config = ServerConfig.from_env()
    server = TetherServer(setup=setup_notices, config=config)
    await server.start()

    try:
        while server.running:
            await asyncio.sleep(1)
    finally:
        await server.stop()


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
