import json
from unittest.mock import AsyncMock, Mock, patch

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tether.config import ServerConfig
from tether.registry import SessionRegistry
from tether.server.app import TetherServer, create_app


def echo_setup(session):
    async def echo(payload):
        await session.emit("notice", payload)

    async def bye(payload):
        await session.close()

    session.on("send-notice", echo)
    session.on("bye", bye)


class TestCreateApp:
    def test_handler_reply_reaches_browser(self):
        # Arrange
        registry = SessionRegistry()
        client = TestClient(create_app(registry, echo_setup))

        # Act
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text(
                json.dumps({"type": "send-notice", "payload": {"content": "Hi"}})
            )
            reply = websocket.receive_json()

            # Assert
            assert reply == {"type": "notice", "payload": {"content": "Hi"}}
            assert len(registry) == 1

    def test_each_connection_gets_its_own_session(self):
        registry = SessionRegistry()
        client = TestClient(create_app(registry, echo_setup))

        with client.websocket_connect("/ws") as first:
            with client.websocket_connect("/ws") as second:
                first.send_json({"type": "send-notice", "payload": "one"})
                second.send_json({"type": "send-notice", "payload": "two"})

                assert first.receive_json()["payload"] == "one"
                assert second.receive_json()["payload"] == "two"
                assert len(registry) == 2

    def test_malformed_frame_keeps_connection_open(self):
        registry = SessionRegistry()
        client = TestClient(create_app(registry, echo_setup))

        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("this is not json")
            websocket.send_json({"no": "type"})
            websocket.send_json({"type": "send-notice", "payload": "still here"})

            assert websocket.receive_json() == {
                "type": "notice",
                "payload": "still here",
            }

    def test_unknown_type_is_ignored(self):
        registry = SessionRegistry()
        client = TestClient(create_app(registry, echo_setup))

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "nobody-listens", "payload": 1})
            websocket.send_json({"type": "send-notice", "payload": 2})

            assert websocket.receive_json() == {"type": "notice", "payload": 2}

    def test_server_side_close_disconnects_browser(self):
        registry = SessionRegistry()
        client = TestClient(create_app(registry, echo_setup))

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "bye"})

            with pytest.raises(WebSocketDisconnect):
                websocket.receive_text()

    def test_custom_path(self):
        registry = SessionRegistry()
        client = TestClient(create_app(registry, echo_setup, path="/session"))

        with client.websocket_connect("/session") as websocket:
            websocket.send_json({"type": "send-notice", "payload": "ok"})
            assert websocket.receive_json()["payload"] == "ok"


class TestTetherServer:
    @pytest.fixture
    def mock_uvicorn_server(self):
        server = Mock()
        server.serve = AsyncMock()
        with patch("tether.server.app.uvicorn.Server", return_value=server):
            yield server

    async def test_start_serves_app_with_config(self, mock_uvicorn_server):
        # Arrange
        config = ServerConfig(host="0.0.0.0", port=9001, path="/live")
        server = TetherServer(config=config)

        # Act
        with patch("tether.server.app.uvicorn.Config") as mock_config:
            await server.start()
            await server.stop()

        # Assert
        mock_config.assert_called_once_with(
            app=server.app, host="0.0.0.0", port=9001, log_level="info"
        )
        mock_uvicorn_server.serve.assert_awaited_once()
        assert mock_uvicorn_server.should_exit is True
        assert server.running is False

    async def test_start_is_idempotent(self, mock_uvicorn_server):
        # Arrange
        server = TetherServer()

        # Act
        await server.start()
        first_task = server._serve_task
        await server.start()

        # Assert
        assert server._serve_task is first_task
        await server.stop()

    async def test_stop_closes_all_sessions(self, mock_uvicorn_server):
        # Arrange
        registry = Mock(spec=SessionRegistry)
        registry.close_all = AsyncMock()
        server = TetherServer(registry=registry)
        await server.start()

        # Act
        await server.stop()

        # Assert
        registry.close_all.assert_awaited_once()

    async def test_stop_without_start_is_safe(self):
        server = TetherServer()

        await server.stop()

        assert server.running is False
