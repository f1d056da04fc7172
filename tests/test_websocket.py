"""
Realtime transport tests: presence registry, event handling and live fan-out
"""
import json
from unittest.mock import AsyncMock

import pytest
from starlette.websockets import WebSocketDisconnect

from unisocial.common.websocket import ConnectionManager
from unisocial.core.security import create_access_token
from unisocial.routers.realtime import handle_client_event


def ws_url(user):
    return f"/ws?token={create_access_token({'sub': user.username})}"


class TestConnectionManager:

    @pytest.mark.asyncio
    async def test_notify_online_user(self):
        manager = ConnectionManager()
        socket = AsyncMock()
        await manager.connect(1, socket)

        delivered = await manager.notify(1, "newFollower", {"userId": 2})

        assert delivered is True
        socket.send_text.assert_awaited_once()
        assert json.loads(socket.send_text.await_args.args[0]) == {"event": "newFollower", "data": {"userId": 2}}

    @pytest.mark.asyncio
    async def test_notify_offline_user(self):
        manager = ConnectionManager()

        assert await manager.notify(1, "newFollower", {"userId": 2}) is False

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        manager = ConnectionManager()
        socket = AsyncMock()
        socket.send_text.side_effect = RuntimeError("socket closed")
        await manager.connect(1, socket)

        assert await manager.notify(1, "friendRemoved", {"userId": 2}) is False
        assert manager.is_online(1) is False

    @pytest.mark.asyncio
    async def test_stale_disconnect_keeps_newer_socket(self):
        manager = ConnectionManager()
        old, new = AsyncMock(), AsyncMock()
        await manager.connect(1, old)
        await manager.connect(1, new)

        manager.disconnect(1, old)

        assert manager.get_connection(1) is new
        assert manager.get_online_ids() == [1]


class TestClientEvents:

    @pytest.mark.asyncio
    async def test_ping(self, service, make_user):
        alice = make_user()

        reply = await handle_client_event(service, alice.id, json.dumps({"event": "ping"}))

        assert reply == {"event": "pong", "success": True}

    @pytest.mark.asyncio
    async def test_invalid_json(self, service, make_user):
        alice = make_user()

        reply = await handle_client_event(service, alice.id, "{not json")

        assert reply["success"] is False
        assert reply["error"]["code"] == "INVALID_ARGUMENT"

    @pytest.mark.asyncio
    async def test_unknown_event(self, service, make_user):
        alice = make_user()

        reply = await handle_client_event(service, alice.id, json.dumps({"event": "launchRocket"}))

        assert reply["event"] == "error"
        assert reply["error"]["details"] == {"field": "event"}

    @pytest.mark.asyncio
    async def test_send_then_list_then_accept(self, service, make_user):
        alice, bob = make_user(), make_user()

        sent = await handle_client_event(
            service, alice.id, json.dumps({"event": "sendFriendRequest", "data": {"recipientId": bob.id}})
        )
        assert sent["event"] == "friendRequestSent"
        assert sent["success"] is True

        listed = await handle_client_event(service, bob.id, json.dumps({"event": "getFriendRequests"}))
        assert [r["user"]["id"] for r in listed["data"]["requests"]] == [alice.id]

        accepted = await handle_client_event(
            service, bob.id, json.dumps({"event": "acceptFriendRequest", "data": {"senderId": alice.id}})
        )
        assert accepted["success"] is True
        assert accepted["data"]["userId"] == alice.id
        assert accepted["data"]["conversation_id"] is not None

    @pytest.mark.asyncio
    async def test_oversized_id_is_an_error_reply(self, service, make_user):
        alice = make_user()

        reply = await handle_client_event(
            service,
            alice.id,
            json.dumps({"event": "sendFriendRequest", "data": {"recipientId": 100000000000000000000}}),
        )

        assert reply["event"] == "friendRequestSent"
        assert reply["success"] is False
        assert reply["error"]["code"] == "INVALID_ARGUMENT"

    @pytest.mark.asyncio
    async def test_failure_is_reported_on_reply_event(self, service, make_user):
        alice = make_user()

        reply = await handle_client_event(
            service, alice.id, json.dumps({"event": "rejectFriendRequest", "data": {"senderId": 9999}})
        )

        assert reply["event"] == "friendRequestRejected"
        assert reply["success"] is False
        assert reply["error"]["code"] == "CONFLICT"


class TestWebSocketEndpoint:

    def test_rejects_bad_token(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?token=garbage") as ws:
                ws.receive_text()

    def test_ping_pong(self, client, make_user):
        alice = make_user()

        with client.websocket_connect(ws_url(alice)) as ws:
            ws.send_text(json.dumps({"event": "ping"}))
            assert ws.receive_json() == {"event": "pong", "success": True}

    def test_friend_request_reaches_connected_recipient(self, client, make_user, auth_headers):
        alice, bob = make_user(), make_user()

        with client.websocket_connect(ws_url(bob)) as ws:
            # round trip first so the connection is registered
            ws.send_text(json.dumps({"event": "ping"}))
            ws.receive_json()

            response = client.post(f"/api/v1/friends/requests/{bob.id}", headers=auth_headers(alice))
            assert response.json()["data"]["notified_peer"] is True

            assert ws.receive_json() == {"event": "friendRequestReceived", "data": {"userId": alice.id}}

    def test_socket_event_sends_request(self, client, make_user, auth_headers):
        alice, bob = make_user(), make_user()

        with client.websocket_connect(ws_url(alice)) as ws:
            ws.send_text(json.dumps({"event": "sendFriendRequest", "data": {"recipientId": bob.id}}))
            reply = ws.receive_json()

        assert reply["event"] == "friendRequestSent"
        assert reply["data"]["state"] == "pending"
        requests = client.get("/api/v1/friends/requests", headers=auth_headers(bob)).json()["data"]["requests"]
        assert [r["user"]["id"] for r in requests] == [alice.id]

    def test_binary_frame_gets_error_and_connection_stays_open(self, client, make_user):
        alice = make_user()

        with client.websocket_connect(ws_url(alice)) as ws:
            ws.send_bytes(b"\x00\x01")
            reply = ws.receive_json()
            assert reply["success"] is False
            assert reply["error"]["code"] == "INVALID_ARGUMENT"

            ws.send_text(json.dumps({"event": "ping"}))
            assert ws.receive_json() == {"event": "pong", "success": True}

    def test_oversized_id_keeps_connection_open(self, client, make_user):
        alice = make_user()

        with client.websocket_connect(ws_url(alice)) as ws:
            ws.send_text(json.dumps({"event": "sendFriendRequest", "data": {"recipientId": 100000000000000000000}}))
            reply = ws.receive_json()
            assert reply["error"]["code"] == "INVALID_ARGUMENT"

            ws.send_text(json.dumps({"event": "ping"}))
            assert ws.receive_json()["event"] == "pong"
