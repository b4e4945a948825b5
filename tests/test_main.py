"""Tests for the ``python -m newsletter_ingest`` entry point."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from newsletter_ingest.__main__ import _run_once, main
from newsletter_ingest.errors import RecordNotFoundError
from newsletter_ingest.models import IngestResult, PipelineState


def _make_mock_service() -> MagicMock:
    service = MagicMock()
    service.start = AsyncMock()
    service.stop = AsyncMock()
    service.ingest = AsyncMock(
        return_value=IngestResult(state=PipelineState.NOTIFIED, content_key="abc123", message_id=1)
    )
    service.resummarize = AsyncMock(return_value={"제목": "내용"})
    service.backfill = AsyncMock(return_value=[])
    return service


class TestMainUsage:
    @pytest.mark.parametrize("argv", [[], ["unknown"], ["ingest"], ["resummarize", "a", "b"]])
    def test_bad_arguments_exit_1(self, monkeypatch, capsys, argv):
        monkeypatch.setattr("sys.argv", ["newsletter_ingest", *argv])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "Usage" in capsys.readouterr().err


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_ingest_prints_result(self, capsys):
        service = _make_mock_service()

        code = await _run_once(service, "ingest", "abc123")

        assert code == 0
        assert '"state":"notified"' in capsys.readouterr().out
        service.start.assert_awaited_once()
        service.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_ingest_exits_nonzero(self):
        service = _make_mock_service()
        service.ingest.return_value = IngestResult(
            state=PipelineState.REJECTED_UNKNOWN_SOURCE,
            content_key="abc123",
        )
        assert await _run_once(service, "ingest", "abc123") == 1

    @pytest.mark.asyncio
    async def test_resummarize_prints_summary(self, capsys):
        service = _make_mock_service()

        code = await _run_once(service, "resummarize", "abc123")

        assert code == 0
        assert capsys.readouterr().out.strip() == '{"제목": "내용"}'

    @pytest.mark.asyncio
    async def test_resummarize_unknown_key(self, capsys):
        service = _make_mock_service()
        service.resummarize.side_effect = RecordNotFoundError("nope")

        assert await _run_once(service, "resummarize", "nope") == 1
        assert "nope" in capsys.readouterr().err
        service.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_backfill(self):
        service = _make_mock_service()
        assert await _run_once(service, "backfill", None) == 0
        service.backfill.assert_awaited_once()
