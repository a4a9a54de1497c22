"""Unit tests for CLI argument parsing."""
from __future__ import annotations

import pytest

from escrow_lender.cli import _format_position, build_parser
from escrow_lender.models import LenderPosition


class TestBuildParser:
    def test_position_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["position"])
        assert args.command == "position"

    def test_deposit_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["deposit", "1000"])
        assert args.command == "deposit"
        assert args.amount == 1000

    def test_deposit_requires_integer(self) -> None:
        parser = build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["deposit", "1.5"])

    def test_withdraw_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["withdraw"])
        assert args.command == "withdraw"

    def test_set_rate_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["set-rate", "750"])
        assert args.command == "set-rate"
        assert args.rate == 750

    def test_watch_default_interval(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["watch"])
        assert args.command == "watch"
        assert args.interval is None

    def test_watch_custom_interval(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["watch", "2.5"])
        assert args.interval == 2.5

    def test_global_flags(self) -> None:
        parser = build_parser()
        args = parser.parse_args(
            ["--config", "/tmp/c.yaml", "--log-level", "DEBUG", "--user-id", "3", "deals"]
        )
        assert args.config == "/tmp/c.yaml"
        assert args.log_level == "DEBUG"
        assert args.user_id == 3
        assert args.command == "deals"

    def test_no_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args([])
        assert args.command is None


class TestFormatPosition:
    def test_unavailable(self) -> None:
        assert _format_position(None) == "Position unavailable"

    def test_rate_shown_as_percent(self) -> None:
        text = _format_position(
            LenderPosition(user_id=1, deposit_amount=1000, interest_earned=5, interest_rate_bps=525)
        )
        assert "1000 wei" in text
        assert "5 wei" in text
        assert "5.25 %" in text
