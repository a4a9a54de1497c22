"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from escrow_lender.config import (
    AdminConfig,
    AppConfig,
    ChainConfig,
    LedgerConfig,
    OutboxConfig,
    RefreshConfig,
    SessionConfig,
    WalletConfig,
)
from escrow_lender.ledger.outbox import Outbox
from escrow_lender.models import LenderIdentity
from escrow_lender.services import LenderService
from tests.fakes import ADMIN, ESCROW, WALLET, FakeDealLedger, FakeEvmNode


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
        escrow_address=ESCROW,
        receipt_poll_seconds=0.01,
        receipt_timeout_seconds=0.2,
    )


@pytest.fixture()
def sample_app_config(sample_chain_config: ChainConfig, tmp_path: Path) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        wallet=WalletConfig(address=""),
        ledger=LedgerConfig(base_url="https://app.example.com/api", deals_path="/deals"),
        admin=AdminConfig(address=ADMIN),
        refresh=RefreshConfig(interval_seconds=0.05),
        outbox=OutboxConfig(path=str(tmp_path / "outbox.jsonl")),
        session=SessionConfig(user_id=7),
    )


# ---------------------------------------------------------------------------
# Fakes and wired services
# ---------------------------------------------------------------------------


@pytest.fixture()
def node() -> FakeEvmNode:
    return FakeEvmNode()


@pytest.fixture()
def deal_ledger() -> FakeDealLedger:
    return FakeDealLedger()


@pytest.fixture()
def service(
    sample_app_config: AppConfig, node: FakeEvmNode, deal_ledger: FakeDealLedger
) -> LenderService:
    return LenderService(sample_app_config, client=node, ledger=deal_ledger, notifiers=[])


@pytest.fixture()
def identity() -> LenderIdentity:
    return LenderIdentity(user_id=7, address=WALLET)


@pytest.fixture()
def outbox(tmp_path: Path) -> Outbox:
    return Outbox(tmp_path / "outbox.jsonl")


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    chain:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
      escrow_address: "0xe5e5e5e5e5e5e5e5e5e5e5e5e5e5e5e5e5e5e5e5"
      receipt_poll_seconds: 1
      receipt_timeout_seconds: 60
    wallet:
      address: "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
    ledger:
      base_url: "https://app.example.com/api/"
      deals_path: /deals-lenders
      timeout: 5
    admin:
      address: "0xADADADADADADADADADADADADADADADADADADADAD"
    refresh:
      interval_seconds: 10
    outbox:
      path: /tmp/outbox.jsonl
    session:
      user_id: 42
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
