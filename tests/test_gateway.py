"""Tests for the market gateway client."""

from __future__ import annotations

import http.client
import json

import pytest

from agentmarket_trader.gateway import (
    ActionRequest,
    GatewayError,
    Heartbeat,
    MarketGateway,
)


class RecordingTransport:
    def __init__(self, payload=None, status: int = 200, error: Exception | None = None) -> None:
        self.payload = payload
        self.status = status
        self.error = error
        self.calls = []

    def request(self, method, url, headers, data, timeout):  # type: ignore[override]
        self.calls.append({
            "method": method,
            "url": url,
            "headers": headers,
            "data": data,
            "timeout": timeout,
        })
        if self.error is not None:
            raise self.error
        body = self.payload if isinstance(self.payload, bytes) else json.dumps(self.payload).encode()
        return self.status, body


def test_get_tokens_decodes_wire_fields():
    transport = RecordingTransport([
        {"symbol": "XYZ", "price_agc": 2.5, "change_24h": -1.5, "volume_24h": 10, "supply": 1000, "holders": 4}
    ])
    gateway = MarketGateway(base_url="http://gw/", transport=transport)

    tokens = gateway.get_tokens(timeout=3.0)

    assert tokens[0].symbol == "XYZ"
    assert tokens[0].price == pytest.approx(2.5)
    assert tokens[0].change_24h == pytest.approx(-1.5)
    assert tokens[0].supply == 1000
    call = transport.calls[0]
    assert call["url"] == "http://gw/v1/tokens"
    assert call["timeout"] == 3.0


def test_offers_and_rfqs():
    offers = MarketGateway(transport=RecordingTransport([
        {"offer_id": "o1", "agent_id": "a", "asset_symbol": "XYZ", "price_agc": 3, "qty": 2, "status": "open"}
    ])).get_offers()
    rfqs = MarketGateway(transport=RecordingTransport([
        {"rfq_id": "r1", "agent_id": "b", "asset_symbol": "XYZ", "max_price_agc": 4, "qty": 1}
    ])).get_rfqs()
    assert offers[0].price == pytest.approx(3)
    assert offers[0].asset == "XYZ"
    assert rfqs[0].max_price == pytest.approx(4)
    assert rfqs[0].status == ""


def test_balances_fold_to_denom_map():
    transport = RecordingTransport([
        {"addr": "a", "denom": "AGC", "amount": 100},
        {"addr": "a", "denom": "", "amount": 5},
        {"addr": "a", "denom": "XYZ", "amount": 3},
    ])
    balances = MarketGateway(transport=transport).get_balances("agent-1")
    assert balances == {"AGC": 100, "XYZ": 3}
    assert transport.calls[0]["url"].endswith("/v1/balances/agent-1")


def test_agent_record_and_history():
    agent = MarketGateway(transport=RecordingTransport({
        "agent_id": "agent-1",
        "strategy_prompt": "be nice",
        "policy": {"allowed_tokens": ["xyz"]},
    })).get_agent("agent-1")
    assert agent.strategy_prompt == "be nice"
    assert agent.allowed_tokens == ["xyz"]

    history = MarketGateway(transport=RecordingTransport({
        "decisions": [{"decision_id": "d1", "action": "trade", "asset_symbol": "XYZ", "status": "executed"}]
    })).get_agent_history("agent-1")
    assert history[0].decision_id == "d1"
    assert history[0].status == "executed"


def test_post_action_sends_json_and_owner_header():
    transport = RecordingTransport(b"", status=201)
    gateway = MarketGateway(base_url="http://gw", owner_uid=" uid-9 ", transport=transport)

    gateway.post_action(
        ActionRequest(action="trade", agent_id="a", asset_symbol="XYZ", price_agc=2, qty=1, side="buy"),
        timeout=5.0,
    )

    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "http://gw/v1/dev/actions"
    assert call["headers"]["X-Auth-UID"] == "uid-9"
    assert call["headers"]["Content-Type"] == "application/json"
    assert json.loads(call["data"])["asset_symbol"] == "XYZ"
    assert call["timeout"] == 5.0


def test_http_error_status_raises_with_body():
    transport = RecordingTransport(b"insufficient funds", status=400)
    gateway = MarketGateway(transport=transport)
    with pytest.raises(GatewayError) as excinfo:
        gateway.post_heartbeat(Heartbeat(agent_id="a"))
    assert excinfo.value.status == 400
    assert str(excinfo.value) == "gateway request failed: insufficient funds (status 400)"


def test_transport_failures_become_gateway_errors():
    gateway = MarketGateway(transport=RecordingTransport(error=TimeoutError("timed out")))
    with pytest.raises(GatewayError, match="timed out"):
        gateway.get_tokens()


def test_invalid_json_raises():
    gateway = MarketGateway(transport=RecordingTransport(b"<html>", status=200))
    with pytest.raises(GatewayError, match="Invalid JSON"):
        gateway.get_offers()


@pytest.mark.parametrize(
    "payload",
    [
        {"error": "maintenance"},
        [None],
        ["XYZ"],
        "tokens",
    ],
)
def test_unexpected_list_payload_shapes_raise(payload):
    gateway = MarketGateway(transport=RecordingTransport(payload))
    with pytest.raises(GatewayError, match="unexpected payload shape from /v1/tokens"):
        gateway.get_tokens()
    with pytest.raises(GatewayError, match="unexpected payload shape"):
        gateway.get_balances("agent-1")


def test_unexpected_object_payload_shapes_raise():
    with pytest.raises(GatewayError, match="unexpected payload shape"):
        MarketGateway(transport=RecordingTransport(["agent"])).get_agent("agent-1")
    with pytest.raises(GatewayError, match="unexpected payload shape"):
        MarketGateway(transport=RecordingTransport({"decisions": "none"})).get_agent_history("agent-1")


def test_null_collections_read_as_empty():
    assert MarketGateway(transport=RecordingTransport(b"", status=200)).get_offers() == []
    assert MarketGateway(transport=RecordingTransport({"decisions": None})).get_agent_history("a") == []
    agent = MarketGateway(transport=RecordingTransport({"agent_id": "a", "policy": "open"})).get_agent("a")
    assert agent.allowed_tokens == []


def test_http_protocol_errors_become_gateway_errors():
    gateway = MarketGateway(transport=RecordingTransport(error=http.client.IncompleteRead(b"par")))
    with pytest.raises(GatewayError, match="gateway request failed"):
        gateway.get_rfqs()
