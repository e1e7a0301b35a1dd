"""HTTP client for the market gateway (indexer) REST API."""

from __future__ import annotations

import http.client
import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .utils import safe_float, safe_int


class GatewayError(RuntimeError):
    """Exception raised when a gateway call fails or times out."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status = status
        self.payload = payload or {}


class Transport(Protocol):
    """Protocol for pluggable HTTP transports."""

    def request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[bytes],
        timeout: float,
    ) -> Tuple[int, bytes]:
        """Perform an HTTP request and return a status code with a body."""


class UrllibTransport:
    """Default transport implementation built on top of :mod:`urllib`."""

    def request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[bytes],
        timeout: float,
    ) -> Tuple[int, bytes]:
        request = urllib.request.Request(url=url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(request, timeout=timeout) as response:
                return response.getcode(), response.read()
        except urllib.error.HTTPError as exc:  # pragma: no cover - network failure path
            return exc.code, exc.read()


# ----------------------------------------------------------------------
# Wire types
# ----------------------------------------------------------------------
@dataclass(slots=True)
class Token:
    symbol: str
    name: str = ""
    price: float = 0.0
    change_24h: float = 0.0
    volume_24h: float = 0.0
    supply: int = 0
    holders: int = 0
    last_trade_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            symbol=str(data.get("symbol", "")),
            name=str(data.get("name", "")),
            price=safe_float(data.get("price_agc")),
            change_24h=safe_float(data.get("change_24h")),
            volume_24h=safe_float(data.get("volume_24h")),
            supply=safe_int(data.get("supply")),
            holders=safe_int(data.get("holders")),
            last_trade_at=str(data.get("last_trade_at", "")),
        )


@dataclass(slots=True)
class Offer:
    """A resting sell-side listing."""

    offer_id: str
    agent_id: str
    asset: str
    price: float
    qty: float
    status: str = ""
    category: str = ""
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Offer":
        return cls(
            offer_id=str(data.get("offer_id", "")),
            agent_id=str(data.get("agent_id", "")),
            asset=str(data.get("asset_symbol", "")),
            price=safe_float(data.get("price_agc")),
            qty=safe_float(data.get("qty")),
            status=str(data.get("status", "")),
            category=str(data.get("category", "")),
            created_at=str(data.get("created_at", "")),
        )


@dataclass(slots=True)
class RFQ:
    """A resting buy-side request for quote."""

    rfq_id: str
    agent_id: str
    asset: str
    max_price: float
    qty: float
    status: str = ""
    category: str = ""
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RFQ":
        return cls(
            rfq_id=str(data.get("rfq_id", "")),
            agent_id=str(data.get("agent_id", "")),
            asset=str(data.get("asset_symbol", "")),
            max_price=safe_float(data.get("max_price_agc")),
            qty=safe_float(data.get("qty")),
            status=str(data.get("status", "")),
            category=str(data.get("category", "")),
            created_at=str(data.get("created_at", "")),
        )


@dataclass(slots=True)
class AgentRecord:
    agent_id: str
    user_addr: str = ""
    status: str = ""
    strategy_prompt: str = ""
    strategy_uri: str = ""
    strategy_version: str = ""
    allowed_tokens: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentRecord":
        policy = data.get("policy")
        if not isinstance(policy, dict):
            policy = {}
        tokens = policy.get("allowed_tokens")
        if not isinstance(tokens, list):
            tokens = []
        return cls(
            agent_id=str(data.get("agent_id", "")),
            user_addr=str(data.get("user_addr", "")),
            status=str(data.get("status", "")),
            strategy_prompt=str(data.get("strategy_prompt", "")),
            strategy_uri=str(data.get("strategy_uri", "")),
            strategy_version=str(data.get("strategy_version", "")),
            allowed_tokens=[str(token) for token in tokens],
        )


@dataclass(slots=True)
class HistoryDecision:
    """A decision previously recorded by the gateway for an agent."""

    decision_id: str
    action: str
    asset: str = ""
    side: str = ""
    price: float = 0.0
    qty: float = 0.0
    reason: str = ""
    status: str = ""
    error: str = ""
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryDecision":
        return cls(
            decision_id=str(data.get("decision_id", "")),
            action=str(data.get("action", "")),
            asset=str(data.get("asset_symbol", "")),
            side=str(data.get("side", "")),
            price=safe_float(data.get("price_agc")),
            qty=safe_float(data.get("qty")),
            reason=str(data.get("reason", "")),
            status=str(data.get("status", "")),
            error=str(data.get("error", "")),
            created_at=str(data.get("created_at", "")),
        )


@dataclass(slots=True)
class ActionRequest:
    action: str
    agent_id: str
    asset_symbol: str
    price_agc: float
    qty: float
    side: str = ""
    reason: str = ""
    category: str = ""


@dataclass(slots=True)
class DecisionReport:
    agent_id: str
    action: str
    asset_symbol: str = ""
    price_agc: float = 0.0
    qty: float = 0.0
    side: str = ""
    reason: str = ""
    raw: str = ""
    status: str = ""
    error: str = ""


@dataclass(slots=True)
class Heartbeat:
    agent_id: str
    profile: str = ""
    user_addr: str = ""


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------
@dataclass(slots=True)
class MarketGateway:
    """Thin wrapper around the gateway's REST endpoints.

    Every method accepts an explicit ``timeout`` so callers can bound each
    call individually; ``timeout`` defaults to the client-wide value.
    """

    base_url: str = "http://localhost:8080"
    owner_uid: str = ""
    timeout: float = 10.0
    transport: Transport = field(default_factory=UrllibTransport)

    def _url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        headers: Dict[str, str] = {"Accept": "application/json"}
        data = None
        if body is not None:
            data = json.dumps(body).encode()
            headers["Content-Type"] = "application/json"
        if self.owner_uid.strip():
            headers["X-Auth-UID"] = self.owner_uid.strip()
        try:
            status, response = self.transport.request(
                method, self._url(path), headers, data, timeout or self.timeout
            )
        except (OSError, http.client.HTTPException) as exc:  # URLError, timeouts, IncompleteRead
            raise GatewayError(f"gateway request failed: {exc}") from exc
        return self._parse_response(status, response)

    def _parse_response(self, status: int, body: bytes) -> Any:
        text = body.decode(errors="replace") if body else ""
        if status >= 300:
            message = "gateway request failed"
            trimmed = text[:4096].strip()
            if trimmed:
                message = f"{message}: {trimmed}"
            raise GatewayError(f"{message} (status {status})", status=status)
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise GatewayError("Invalid JSON response", status, {"body": text}) from exc

    @staticmethod
    def _records(payload: Any, path: str) -> List[Dict[str, Any]]:
        """Require a JSON array of objects; ``None`` (empty body) reads as empty."""

        if payload is None:
            return []
        if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
            raise GatewayError(f"unexpected payload shape from {path}", payload={"body": payload})
        return payload

    @staticmethod
    def _object(payload: Any, path: str) -> Dict[str, Any]:
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise GatewayError(f"unexpected payload shape from {path}", payload={"body": payload})
        return payload

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------
    def get_tokens(self, timeout: Optional[float] = None) -> List[Token]:
        path = "/v1/tokens"
        payload = self._request("GET", path, timeout=timeout)
        return [Token.from_dict(item) for item in self._records(payload, path)]

    def get_offers(self, timeout: Optional[float] = None) -> List[Offer]:
        path = "/v1/offers"
        payload = self._request("GET", path, timeout=timeout)
        return [Offer.from_dict(item) for item in self._records(payload, path)]

    def get_rfqs(self, timeout: Optional[float] = None) -> List[RFQ]:
        path = "/v1/rfqs"
        payload = self._request("GET", path, timeout=timeout)
        return [RFQ.from_dict(item) for item in self._records(payload, path)]

    def get_balances(self, addr: str, timeout: Optional[float] = None) -> Dict[str, int]:
        path = f"/v1/balances/{urllib.parse.quote(addr)}"
        payload = self._request("GET", path, timeout=timeout)
        balances: Dict[str, int] = {}
        for item in self._records(payload, path):
            denom = str(item.get("denom", ""))
            if not denom:
                continue
            balances[denom] = safe_int(item.get("amount"))
        return balances

    def get_agent(self, agent_id: str, timeout: Optional[float] = None) -> AgentRecord:
        path = f"/v1/agents/{urllib.parse.quote(agent_id)}"
        payload = self._request("GET", path, timeout=timeout)
        return AgentRecord.from_dict(self._object(payload, path))

    def get_agent_history(
        self, agent_id: str, timeout: Optional[float] = None
    ) -> List[HistoryDecision]:
        path = f"/v1/agents/{urllib.parse.quote(agent_id)}/history"
        payload = self._object(self._request("GET", path, timeout=timeout), path)
        decisions = self._records(payload.get("decisions"), path)
        return [HistoryDecision.from_dict(item) for item in decisions]

    # ------------------------------------------------------------------
    # Write endpoints
    # ------------------------------------------------------------------
    def post_action(self, request: ActionRequest, timeout: Optional[float] = None) -> None:
        self._request("POST", "/v1/dev/actions", asdict(request), timeout=timeout)

    def post_decision(self, report: DecisionReport, timeout: Optional[float] = None) -> None:
        self._request("POST", "/v1/dev/decisions", asdict(report), timeout=timeout)

    def post_heartbeat(self, heartbeat: Heartbeat, timeout: Optional[float] = None) -> None:
        self._request("POST", "/v1/dev/heartbeat", asdict(heartbeat), timeout=timeout)


__all__ = [
    "ActionRequest",
    "AgentRecord",
    "DecisionReport",
    "GatewayError",
    "Heartbeat",
    "HistoryDecision",
    "MarketGateway",
    "Offer",
    "RFQ",
    "Token",
    "Transport",
    "UrllibTransport",
]
