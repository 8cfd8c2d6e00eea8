"""
Tests for the Session State Machine

Tests for the session lifecycle including:
- Connecting, retrying and reconnecting
- Usage errors that must not touch the network
- Request deadlines
- Handling of server frames (restructuring, heartbeats, stray replies)
- Clean shutdown
"""

import asyncio
import logging

import pytest

from src.anonconf import (
    ChatMessage,
    ConferenceClient,
    ConferenceError,
    ConferenceErrorCode,
    ConferenceRestructuring,
    CreateConferenceResponse,
    DisconnectNotice,
    Heartbeat,
    JoinConferenceResponse,
    JoinSaltRequest,
    JoinSaltResponse,
    LeaveConferenceNotice,
    NotInConferenceError,
    SessionState,
    SessionStateMachine,
    ServerAddress,
)
from src.anonconf.session import RequestKind

from conftest import CONFERENCE_ID, CONFERENCE_PASSWORD, make_config


def record_states(client: ConferenceClient) -> list:
    states = []
    client.set_on_state_change(lambda old, new: states.append(new))
    return states


class TestConnecting:
    """Tests for the connection lifecycle."""

    @pytest.mark.asyncio
    async def test_connects_to_idle(self, client, server):
        """Test that a started client ends up IDLE."""
        assert client.state is SessionState.IDLE
        assert client.session.connected
        assert server.connect_urls == ["ws://localhost:7667"]

    @pytest.mark.asyncio
    async def test_retries_after_refused_connection(self, server, waiter):
        """Test that refused attempts are retried with backoff."""
        server.refuse = 2
        client = ConferenceClient(make_config(), websocket_factory=server.connect)
        client.start()
        try:
            await waiter(lambda: client.state is SessionState.IDLE)
            assert len(server.connect_urls) == 3
            assert client.machine.reconnect_attempts == 0
        finally:
            await client.stop()

    @pytest.mark.asyncio
    async def test_transport_failure_reconnects(self, client, server, waiter):
        """Test that a dropped connection is replaced by a new one."""
        states = record_states(client)
        first = server.socket

        first.fail()
        await waiter(lambda: len(server.sockets) == 2)
        await waiter(lambda: client.state is SessionState.IDLE)

        assert states[:3] == [
            SessionState.DISCONNECTED,
            SessionState.CONNECTING,
            SessionState.IDLE,
        ]
        assert server.socket is not first

    @pytest.mark.asyncio
    async def test_failure_in_conference_clears_membership(
        self, client, server, waiter
    ):
        """Test that reconnecting does not restore the conference."""
        await client.create_conference(CONFERENCE_PASSWORD)
        states = record_states(client)

        server.socket.fail()
        await waiter(lambda: len(server.sockets) == 2)
        await waiter(lambda: client.state is SessionState.IDLE)

        assert states[0] is SessionState.DISCONNECTED
        assert client.session.conference_id is None
        assert client.session.pseudonym is None
        # Nothing is sent on the new connection until the user acts
        assert server.socket.sent_frames == []

    @pytest.mark.asyncio
    async def test_malformed_frame_drops_connection(
        self, client, server, waiter, caplog
    ):
        """Test that a malformed frame is treated as a transport failure."""
        caplog.set_level(logging.ERROR)
        states = record_states(client)

        server.socket.push_bytes(b"\x00\x00\x00\x02\x42{}")
        await waiter(lambda: len(server.sockets) == 2)

        assert states[0] is SessionState.DISCONNECTED
        assert "Malformed frame" in caplog.text

    @pytest.mark.asyncio
    async def test_server_closing_connection(self, client, server, waiter):
        """Test that a clean close from the server also reconnects."""
        await server.socket.close()
        await waiter(lambda: len(server.sockets) == 2)
        await waiter(lambda: client.state is SessionState.IDLE)


class TestUsageErrors:
    """Tests for operations that are not allowed in the current state."""

    @pytest.mark.asyncio
    async def test_send_from_idle(self, client, server):
        """Test that sending without a conference fails locally."""
        with pytest.raises(NotInConferenceError):
            await client.send_message("hello")
        assert server.socket.sent_frames == []

    @pytest.mark.asyncio
    async def test_leave_from_idle(self, client, server):
        """Test that leaving without a conference fails locally."""
        with pytest.raises(ConferenceError) as exc_info:
            await client.leave_conference()
        assert exc_info.value.code is ConferenceErrorCode.NOT_IN_CONFERENCE
        assert server.socket.sent_frames == []

    @pytest.mark.asyncio
    async def test_create_while_disconnected(self, server):
        """Test that requests fail with NOT_CONNECTED before connecting."""
        client = ConferenceClient(make_config(), websocket_factory=server.connect)
        with pytest.raises(ConferenceError) as exc_info:
            await client.create_conference(CONFERENCE_PASSWORD)
        assert exc_info.value.code is ConferenceErrorCode.NOT_CONNECTED

    @pytest.mark.asyncio
    async def test_join_while_in_conference(self, client):
        """Test that join fails with ALREADY_IN_CONFERENCE."""
        await client.create_conference(CONFERENCE_PASSWORD)
        with pytest.raises(ConferenceError) as exc_info:
            await client.join_conference(CONFERENCE_ID, CONFERENCE_PASSWORD)
        assert exc_info.value.code is ConferenceErrorCode.ALREADY_IN_CONFERENCE
        assert client.state is SessionState.IN_CONFERENCE

    @pytest.mark.asyncio
    async def test_second_request_while_pending(self, client, server):
        """Test that only one create/join may be outstanding."""
        server.silent = (JoinSaltRequest,)
        first = asyncio.create_task(
            client.join_conference(CONFERENCE_ID, CONFERENCE_PASSWORD)
        )
        await asyncio.sleep(0.05)
        assert client.state is SessionState.AWAITING_JOIN

        with pytest.raises(ConferenceError) as exc_info:
            await client.create_conference(CONFERENCE_PASSWORD)
        assert exc_info.value.code is ConferenceErrorCode.REQUEST_PENDING

        with pytest.raises(ConferenceError):
            await first

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, client):
        """Test that bad arguments are rejected before any I/O."""
        with pytest.raises(ValueError):
            await client.create_conference("")
        with pytest.raises(ValueError):
            await client.join_conference(-1, "pw")
        with pytest.raises(ValueError):
            await client.join_conference(2**64, "pw")


class TestDeadlines:
    """Tests for request timeouts."""

    @pytest.mark.asyncio
    async def test_join_times_out(self, client, server):
        """Test that an unanswered join fails with TIMEOUT and goes IDLE."""
        server.silent = (JoinSaltRequest,)
        with pytest.raises(ConferenceError) as exc_info:
            await client.join_conference(CONFERENCE_ID, CONFERENCE_PASSWORD)

        assert exc_info.value.code is ConferenceErrorCode.TIMEOUT
        assert client.state is SessionState.IDLE
        assert client.machine.pending is None

    @pytest.mark.asyncio
    async def test_late_reply_is_ignored(self, client, server, waiter, caplog):
        """Test that a reply after the deadline does not enter a conference."""
        server.silent = (JoinSaltRequest,)
        with pytest.raises(ConferenceError):
            await client.join_conference(CONFERENCE_ID, CONFERENCE_PASSWORD)

        caplog.set_level(logging.WARNING)
        server.socket.push(JoinConferenceResponse("anon-late", 2))
        await waiter(lambda: "unsolicited" in caplog.text)
        assert client.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending_request(self, client, server):
        """Test that a transport failure fails the request NOT_CONNECTED."""
        server.silent = (JoinSaltRequest,)
        task = asyncio.create_task(
            client.join_conference(CONFERENCE_ID, CONFERENCE_PASSWORD)
        )
        await asyncio.sleep(0.05)
        server.socket.fail()

        with pytest.raises(ConferenceError) as exc_info:
            await task
        assert exc_info.value.code is ConferenceErrorCode.NOT_CONNECTED

    @pytest.mark.asyncio
    async def test_cancelled_join_releases_request(self, client, server):
        """Test that cancelling the caller does not leave a request behind."""
        server.silent = (JoinSaltRequest,)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                client.join_conference(CONFERENCE_ID, CONFERENCE_PASSWORD), 0.1
            )

        assert client.state is SessionState.IDLE
        assert client.machine.pending is None
        await client.create_conference(CONFERENCE_PASSWORD)
        assert client.state is SessionState.IN_CONFERENCE

    @pytest.mark.asyncio
    async def test_deadline_fires_without_waiter(self, client, server, waiter):
        """Test that a request nobody waits on still times out."""
        server.silent = (JoinSaltRequest,)
        pending = await client.machine.submit(
            RequestKind.JOIN,
            JoinSaltRequest(CONFERENCE_ID),
            expects=(JoinSaltResponse,),
            conference_id=CONFERENCE_ID,
        )
        assert client.state is SessionState.AWAITING_JOIN

        await waiter(lambda: client.state is SessionState.IDLE)

        assert client.machine.pending is None
        assert pending.reply.exception().code is ConferenceErrorCode.TIMEOUT
        await client.create_conference(CONFERENCE_PASSWORD)

    @pytest.mark.asyncio
    async def test_abandon_after_reply(self, client, server):
        """Test that abandoning an answered request returns to IDLE."""
        pending = await client.machine.submit(
            RequestKind.JOIN,
            JoinSaltRequest(CONFERENCE_ID),
            expects=(JoinSaltResponse,),
            conference_id=CONFERENCE_ID,
        )
        await client.machine.wait_for_reply(pending)

        await client.machine.abandon(pending)
        await client.machine.abandon(pending)

        assert client.state is SessionState.IDLE
        assert client.machine.pending is None


class TestCallbackFailures:
    """Tests that broken presentation callbacks do not stop the session."""

    @pytest.mark.asyncio
    async def test_failing_message_callback_keeps_reading(
        self, client, server, waiter
    ):
        """Test that frames after a failed delivery are still handled."""

        def broken_display(message):
            raise RuntimeError("display bug")

        client.set_on_message(broken_display)
        await client.create_conference(CONFERENCE_PASSWORD)

        server.socket.push(ChatMessage("anon-other", 1, "boom"))
        server.socket.push(Heartbeat())
        await waiter(lambda: client.session.last_heartbeat is not None)

        assert client.state is SessionState.IN_CONFERENCE
        assert client.dispatcher.highest_delivered("anon-other") == 1

    @pytest.mark.asyncio
    async def test_failing_state_listener_still_reconnects(
        self, client, server, waiter
    ):
        """Test that reconnect continues when a listener raises."""

        def broken_listener(old_state, new_state):
            raise RuntimeError("listener bug")

        client.set_on_state_change(broken_listener)
        await client.create_conference(CONFERENCE_PASSWORD)

        server.socket.fail()
        await waiter(lambda: len(server.sockets) == 2)
        await waiter(lambda: client.state is SessionState.IDLE)

        assert client.session.conference_id is None

    @pytest.mark.asyncio
    async def test_failing_restructuring_callback(self, client, server, waiter):
        """Test that a failing restructuring callback keeps the update."""

        def broken_notice(conference_id, peer_count):
            raise RuntimeError("notice bug")

        client.set_on_restructuring(broken_notice)
        await client.create_conference(CONFERENCE_PASSWORD)

        server.socket.push(ConferenceRestructuring(CONFERENCE_ID, 3))
        await waiter(lambda: client.session.peer_count == 3)

        server.socket.push(Heartbeat())
        await waiter(lambda: client.session.last_heartbeat is not None)


class TestServerFrames:
    """Tests for unsolicited frames from the server."""

    @pytest.mark.asyncio
    async def test_restructuring_updates_peer_count(
        self, client, server, waiter
    ):
        """Test that restructuring notices update the session."""
        notices = []
        client.set_on_restructuring(lambda cid, n: notices.append((cid, n)))
        await client.create_conference(CONFERENCE_PASSWORD)

        server.socket.push(ConferenceRestructuring(CONFERENCE_ID, 5))
        await waiter(lambda: notices)

        assert notices == [(CONFERENCE_ID, 5)]
        assert client.session.peer_count == 5

    @pytest.mark.asyncio
    async def test_restructuring_for_other_conference(
        self, client, server, caplog, waiter
    ):
        """Test that notices for another conference are ignored."""
        caplog.set_level(logging.WARNING)
        await client.create_conference(CONFERENCE_PASSWORD)

        server.socket.push(ConferenceRestructuring(1, 9))
        await waiter(lambda: "restructuring" in caplog.text)
        assert client.session.peer_count == 1

    @pytest.mark.asyncio
    async def test_heartbeat_recorded(self, client, server, waiter):
        """Test that heartbeats are timestamped."""
        server.socket.push(Heartbeat())
        await waiter(lambda: client.session.last_heartbeat is not None)

    @pytest.mark.asyncio
    async def test_unsolicited_response_ignored(
        self, client, server, caplog, waiter
    ):
        """Test that a reply with no pending request changes nothing."""
        caplog.set_level(logging.WARNING)
        server.socket.push(CreateConferenceResponse(123))
        await waiter(lambda: "unsolicited" in caplog.text)
        assert client.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_chat_outside_conference_dropped(
        self, client, server, waiter
    ):
        """Test that chat frames are dropped unless in a conference."""
        delivered = []
        client.set_on_message(delivered.append)

        server.socket.push(ChatMessage("anon-a", 1, "stray"))
        server.socket.push(Heartbeat())
        await waiter(lambda: client.session.last_heartbeat is not None)
        assert delivered == []


class TestLeaveAndStop:
    """Tests for leaving and shutting down."""

    @pytest.mark.asyncio
    async def test_leave_is_fire_and_forget(self, client, server):
        """Test that leave sends a notice and goes straight to IDLE."""
        await client.create_conference(CONFERENCE_PASSWORD)
        states = record_states(client)

        await client.leave_conference()

        assert states == [SessionState.LEAVING, SessionState.IDLE]
        assert server.socket.sent_frames[-1] == LeaveConferenceNotice(
            CONFERENCE_ID
        )
        assert client.session.conference_id is None

    @pytest.mark.asyncio
    async def test_stop_says_goodbye(self, server, waiter):
        """Test that stop() sends DisconnectNotice and closes."""
        client = ConferenceClient(make_config(), websocket_factory=server.connect)
        client.start()
        await waiter(lambda: client.state is SessionState.IDLE)

        await client.stop()

        assert server.socket.sent_frames == [DisconnectNotice()]
        assert server.socket.closed
        assert client.state is SessionState.DISCONNECTED
        await asyncio.sleep(0.05)
        assert len(server.sockets) == 1

    @pytest.mark.asyncio
    async def test_stop_while_retrying(self, server):
        """Test that stop() ends the retry loop."""
        server.refuse = 1000
        client = ConferenceClient(make_config(), websocket_factory=server.connect)
        client.start()
        await asyncio.sleep(0.05)

        await client.stop()
        attempts = len(server.connect_urls)
        await asyncio.sleep(0.1)
        assert len(server.connect_urls) == attempts
        assert client.state is SessionState.DISCONNECTED


class TestRequestBookkeeping:
    """Tests for the pending request primitives."""

    @pytest.mark.asyncio
    async def test_submit_requires_connection(self):
        """Test that submit() without a transport is NOT_CONNECTED."""
        machine = SessionStateMachine(ServerAddress())
        with pytest.raises(ConferenceError) as exc_info:
            await machine.submit(
                RequestKind.JOIN, JoinSaltRequest(1), expects=()
            )
        assert exc_info.value.code is ConferenceErrorCode.NOT_CONNECTED
        assert machine.pending is None
