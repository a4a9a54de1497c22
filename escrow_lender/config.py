"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    escrow_address: str = ""
    lender_address: str = ""
    receipt_poll_seconds: float = 2.0
    receipt_timeout_seconds: float = 120.0


@dataclass(frozen=True)
class WalletConfig:
    address: str = ""


@dataclass(frozen=True)
class LedgerConfig:
    base_url: str = ""
    deals_path: str = "/deals"
    timeout: int = 15


@dataclass(frozen=True)
class AdminConfig:
    address: str = ""


@dataclass(frozen=True)
class RefreshConfig:
    interval_seconds: float = 10.0


@dataclass(frozen=True)
class OutboxConfig:
    path: str = "data/outbox.jsonl"


@dataclass(frozen=True)
class SessionConfig:
    user_id: int | None = None


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    outbox: OutboxConfig = field(default_factory=OutboxConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        escrow_address=raw.get("escrow_address", "") or "",
        lender_address=raw.get("lender_address", "") or "",
        receipt_poll_seconds=float(raw.get("receipt_poll_seconds", 2.0)),
        receipt_timeout_seconds=float(raw.get("receipt_timeout_seconds", 120.0)),
    )


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        base_url=(raw.get("base_url", "") or "").rstrip("/"),
        deals_path=raw.get("deals_path", "/deals"),
        timeout=int(raw.get("timeout", 15)),
    )


def _build_session(raw: dict[str, Any]) -> SessionConfig:
    user_id = raw.get("user_id")
    if user_id in (None, ""):
        return SessionConfig()
    return SessionConfig(user_id=int(user_id))


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        wallet=WalletConfig(address=raw.get("wallet", {}).get("address", "") or ""),
        ledger=_build_ledger(raw.get("ledger", {})),
        admin=AdminConfig(address=raw.get("admin", {}).get("address", "") or ""),
        refresh=RefreshConfig(
            interval_seconds=float(raw.get("refresh", {}).get("interval_seconds", 10.0))
        ),
        outbox=OutboxConfig(
            path=raw.get("outbox", {}).get("path", OutboxConfig.path)
        ),
        session=_build_session(raw.get("session", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")
    if not cfg.chain.escrow_address:
        raise ValueError("Escrow contract address is not configured")
    if not cfg.ledger.base_url:
        raise ValueError("Ledger base_url is not configured")
    if cfg.refresh.interval_seconds <= 0:
        raise ValueError("Refresh interval must be positive")
    if cfg.chain.receipt_poll_seconds <= 0 or cfg.chain.receipt_timeout_seconds <= 0:
        raise ValueError("Receipt polling settings must be positive")
