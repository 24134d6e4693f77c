import pytest
from starlette.websockets import WebSocketDisconnect

from mafia_client.services.errors import InvalidPayloadError
from mafia_client.services.transport import WSTransport
from mafia_client.services.ws_codec import decode_envelope, encode_envelope


class FakeConnection:
    """Connexion façon starlette : trames scriptées en entrée, trames envoyées enregistrées."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []
        self.closed = False

    async def receive_text(self):
        if not self.frames:
            raise WebSocketDisconnect(code=1000)
        return self.frames.pop(0)

    async def send_text(self, text):
        self.sent.append(text)

    async def close(self):
        self.closed = True


def test_subscription_released_exactly_once(transport):
    calls = []
    sub = transport.on("night-start", calls.append)
    transport.deliver("night-start", {"timeToVote": 1})
    assert sub.unsubscribe() is True
    assert sub.unsubscribe() is False
    transport.deliver("night-start", {"timeToVote": 2})
    assert calls == [{"timeToVote": 1}]


def test_subscription_as_context_manager(transport):
    with transport.on("game-over", lambda p: None):
        assert transport.handler_count("game-over") == 1
    assert transport.handler_count("game-over") == 0


def test_envelope_codec():
    text = encode_envelope("day-vote", {"votingFor": "A"})
    assert decode_envelope(text) == ("day-vote", {"votingFor": "A"})
    assert decode_envelope("not json") is None
    assert decode_envelope('["night-start"]') is None
    assert decode_envelope('{"payload": {}}') is None
    assert decode_envelope('{"type": "start-day"}') == ("start-day", {})


@pytest.mark.anyio
async def test_ws_transport_delivers_in_order_and_skips_garbage():
    conn = FakeConnection([
        encode_envelope("night-start", {"timeToVote": 30}),
        "garbage",
        encode_envelope("night-end", {"playerKilled": "A"}),
    ])
    transport = WSTransport(conn)
    received = []
    transport.on("night-start", lambda p: received.append(("night-start", p)))
    transport.on("night-end", lambda p: received.append(("night-end", p)))

    await transport.run()

    assert received == [("night-start", {"timeToVote": 30}), ("night-end", {"playerKilled": "A"})]
    assert transport.closed is True
    assert conn.closed is True


@pytest.mark.anyio
async def test_ws_transport_flushes_outbound_frames():
    conn = FakeConnection([encode_envelope("night-start", {})])
    transport = WSTransport(conn)
    transport.on("night-start", lambda p: transport.emit("mafia-vote", {"votingFor": "B"}))

    await transport.run()

    assert [decode_envelope(t) for t in conn.sent] == [("mafia-vote", {"votingFor": "B"})]
    assert transport.emit("start-day") is False


@pytest.mark.anyio
async def test_protocol_violation_propagates_from_receive_loop(lobby_factory):
    from mafia_client.services.session import GameSession

    conn = FakeConnection([
        encode_envelope("suspect-reveal", {"nickname": "A"}),
        encode_envelope("night-start", {}),
    ])
    session = GameSession(lobby_factory(role="detective"), WSTransport(conn)).open()

    with pytest.raises(InvalidPayloadError):
        await session.run()

    assert session.active is False
    assert conn.closed is True
    assert conn.frames  # la trame suivante n'a jamais été lue
