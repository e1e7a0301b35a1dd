"""Configuration helpers for the autonomous market agent."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback for older versions
    tomllib = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GatewayConfig:
    """Networking parameters for the market gateway (indexer)."""

    base_url: str = "http://localhost:8080"
    owner_uid: str = ""
    timeout: float = 10.0


@dataclass(slots=True)
class LLMConfig:
    """Configuration for the completion provider that proposes actions."""

    provider: str = ""  # "", "openai" or "ollama"
    model: str = ""
    base_url: str = ""
    api_key: str = ""
    temperature: float = 0.2
    max_output_tokens: int = 256
    timeout_seconds: int = 15


@dataclass(slots=True)
class RiskConfig:
    """Venue limits and fees enforced before an action is submitted."""

    max_open_offers_per_agent: int = 5
    max_open_offers_per_asset: int = 3
    max_open_rfqs_per_agent: int = 3
    offer_fee: int = 0  # in settlement units
    rfq_fee: int = 0
    trade_fee_bps: int = 10
    mint_fee_per_unit: int = 0


@dataclass(slots=True)
class AgentConfig:
    """Top-level configuration object consumed by the agent runner."""

    agent_id: str = ""
    user_addr: str = ""
    profile: str = ""
    settlement_symbol: str = "AGC"
    tick_seconds: float = 2.0
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentConfig":
        """Construct :class:`AgentConfig` from a plain dictionary."""

        agent = data.get("agent", {})
        return cls(
            agent_id=str(agent.get("id", "")).strip(),
            user_addr=str(agent.get("user_addr", "")).strip(),
            profile=str(agent.get("profile", "")).strip(),
            settlement_symbol=str(data.get("settlement_symbol", "AGC")).strip().upper() or "AGC",
            tick_seconds=float(data.get("tick_seconds", 2.0)),
            gateway=GatewayConfig(**data.get("gateway", {})),
            llm=LLMConfig(**data.get("llm", {})),
            risk=RiskConfig(**data.get("risk", {})),
        )


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _load_yaml(path: Path) -> Dict[str, Any]:
    import yaml

    with path.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def _load_toml(path: Path) -> Dict[str, Any]:
    if tomllib is None:  # pragma: no cover - Python < 3.11 fallback
        raise RuntimeError("TOML configuration files require Python 3.11 or newer.")
    with path.open("rb") as fh:
        return tomllib.load(fh)


def load_config(path: Union[str, os.PathLike[str]]) -> AgentConfig:
    """Load configuration data from JSON, YAML, or TOML files."""

    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix == ".json":
        data = _load_json(file_path)
    elif suffix in {".yml", ".yaml"}:
        data = _load_yaml(file_path)
    elif suffix == ".toml":
        data = _load_toml(file_path)
    else:
        raise ValueError(f"Unsupported configuration format: {suffix}")

    if not isinstance(data, dict):
        raise ValueError("Configuration file must contain a dictionary at the top level.")

    return AgentConfig.from_dict(data)


def _env(environ: Mapping[str, str], name: str) -> str:
    return (environ.get(name) or "").strip()


def _env_number(environ: Mapping[str, str], name: str, kind: Callable[[str], Any]) -> Any:
    value = _env(environ, name)
    if not value:
        return None
    try:
        return kind(value)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, value)
        return None


def apply_env_overrides(
    config: AgentConfig, environ: Optional[Mapping[str, str]] = None
) -> AgentConfig:
    """Overlay deployment environment variables onto ``config`` in place."""

    env = os.environ if environ is None else environ
    if value := _env(env, "INDEXER_URL"):
        config.gateway.base_url = value
    if value := _env(env, "AGENT_OWNER_UID"):
        config.gateway.owner_uid = value
    if value := _env(env, "AGENT_PROFILE"):
        config.profile = value
    if value := _env(env, "LLM_PROVIDER"):
        config.llm.provider = value
    if value := _env(env, "LLM_MODEL"):
        config.llm.model = value
    if value := _env(env, "LLM_BASE_URL"):
        config.llm.base_url = value
    if value := _env(env, "LLM_API_KEY"):
        config.llm.api_key = value
    if (value := _env(env, "OPENAI_API_KEY")) and not config.llm.api_key:
        config.llm.api_key = value
    if (value := _env(env, "OLLAMA_HOST")) and not config.llm.base_url:
        config.llm.base_url = value
    if (number := _env_number(env, "LLM_TEMPERATURE", float)) is not None:
        config.llm.temperature = number
    if (number := _env_number(env, "LLM_MAX_TOKENS", int)) is not None:
        config.llm.max_output_tokens = number
    if (number := _env_number(env, "LLM_TIMEOUT_SECONDS", int)) is not None:
        config.llm.timeout_seconds = number
    return config


__all__ = [
    "AgentConfig",
    "GatewayConfig",
    "LLMConfig",
    "RiskConfig",
    "apply_env_overrides",
    "load_config",
]
