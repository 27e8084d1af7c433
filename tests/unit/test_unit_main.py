# tests/unit/test_unit_main.py — v1
"""Tests for main.py — CLI parsing and command dispatch with mocked services."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ragtiers.api.models import FeedbackResponse, ResolveResponse
from ragtiers.core.models import ReinforcementReport, SourceReference
from ragtiers.main import _build_parser, main
from ragtiers.version import __version__


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    root = logging.getLogger("ragtiers")
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


@pytest.fixture
def services():
    dispatcher = MagicMock()
    dispatcher.drain = AsyncMock()
    return SimpleNamespace(
        settings=SimpleNamespace(admin_roles_list=["admin"], timeout_store=10.0),
        dispatcher=dispatcher,
        repository=MagicMock(),
        reinforcement=MagicMock(),
        cache=MagicMock(),
    )


class TestParser:
    def test_ask_arguments(self):
        args = _build_parser().parse_args(
            ["ask", "precio del lote", "--zone", "quintana_roo", "--development", "fuego",
             "--type", "price", "--force"]
        )
        assert args.query == "precio del lote"
        assert args.content_type == "price"
        assert args.force is True
        assert args.user_id == "cli"

    def test_invalid_zone(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["ask", "q", "--zone", "oaxaca", "--development", "x"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            main(["--version"])
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage:" in capsys.readouterr().out


class TestCommands:
    def test_ask(self, services, capsys):
        response = ResolveResponse(
            success=True, answer="El lote cuesta $1,850,000 [1]", tier="generated",
            query_log_id=7, response_time_ms=120,
            sources=[SourceReference(filename="precios.pdf", page=3, relevance_score=0.91)],
        )
        with patch("ragtiers.api.facade.build_services", return_value=services), \
             patch("ragtiers.api.facade.resolve_query", new=AsyncMock(return_value=response)) as resolve:
            code = main(["ask", "precio del lote", "--zone", "quintana_roo", "--development", "fuego"])

        assert code == 0
        out = capsys.readouterr().out
        assert "El lote cuesta $1,850,000 [1]" in out
        assert "tier=generated log_id=7" in out
        assert "precios.pdf p.3" in out
        identity, payload, _ = resolve.await_args.args
        assert identity.role == "admin"
        assert payload["zone"] == "quintana_roo"
        services.dispatcher.drain.assert_awaited_once()

    def test_ask_error(self, services, capsys):
        response = ResolveResponse(success=False, error="Error procesando la consulta", error_class="internal")
        with patch("ragtiers.api.facade.build_services", return_value=services), \
             patch("ragtiers.api.facade.resolve_query", new=AsyncMock(return_value=response)):
            code = main(["ask", "precio", "--zone", "cdmx", "--development", "torre"])
        assert code == 2
        assert "Error (internal)" in capsys.readouterr().err

    def test_feedback(self, services, capsys):
        with patch("ragtiers.api.facade.build_services", return_value=services), \
             patch("ragtiers.api.facade.submit_feedback",
                   new=AsyncMock(return_value=FeedbackResponse(success=True, feedback_id=3, chunks_updated=2))):
            code = main(["feedback", "7", "5", "--comment", "muy útil"])
        assert code == 0
        assert "Feedback 3 saved (2 chunks updated)" in capsys.readouterr().out

    def test_reinforce(self, services, capsys):
        report = ReinforcementReport(processed=9, created=7, updated=2, errors=["feedback 10: bad"], window_hours=24)
        with patch("ragtiers.api.facade.build_services", return_value=services), \
             patch("ragtiers.api.facade.run_reinforcement", new=AsyncMock(return_value=report)) as run:
            code = main(["reinforce", "--window-hours", "24"])
        assert code == 0
        run.assert_awaited_once_with(services.reinforcement, 24)
        out = capsys.readouterr().out
        assert "Processed:  9" in out
        assert "feedback 10: bad" in out

    def test_cache_purge(self, services, capsys):
        with patch("ragtiers.api.facade.build_services", return_value=services), \
             patch("ragtiers.api.facade.purge_cache", new=AsyncMock(return_value=4)):
            assert main(["cache-purge"]) == 0
        assert "Removed 4 expired cache entries" in capsys.readouterr().out

    def test_fatal_error_returns_one(self):
        with patch("ragtiers.api.facade.build_services", side_effect=RuntimeError("no config")):
            assert main(["cache-purge"]) == 1
