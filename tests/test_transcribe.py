"""Tests for inkport.transcribe.

All tests mock httpx and time.sleep to avoid real HTTP and delays.
"""

from unittest.mock import MagicMock, patch

import httpx as httpx_mod
import pytest

from inkport.config import ImportConfig, TranscriptionConfig
from inkport.transcribe import HttpTranscriber, TranscriptionFailed, build_transcriber


def _resp(status: int, payload=None, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = payload
    return resp


class TestHttpTranscriber:
    @patch("inkport.transcribe.time.sleep")
    @patch("inkport.transcribe.httpx.post")
    def test_success(self, mock_post, mock_sleep):
        mock_post.return_value = _resp(200, {"text": " Buy milk ", "tags": ["#groceries", ""]})
        result = HttpTranscriber("https://ocr.example").transcribe(b"png")
        assert result.text == "Buy milk"
        assert result.tags == ["groceries"]
        mock_sleep.assert_not_called()

    @patch("inkport.transcribe.time.sleep")
    @patch("inkport.transcribe.httpx.post")
    def test_api_key_header(self, mock_post, mock_sleep):
        mock_post.return_value = _resp(200, {"text": "x"})
        HttpTranscriber("https://ocr.example", api_key="k").transcribe(b"png")
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer k"

    @patch("inkport.transcribe.time.sleep")
    @patch("inkport.transcribe.httpx.post")
    def test_429_retries_then_succeeds(self, mock_post, mock_sleep):
        mock_post.side_effect = [_resp(429), _resp(200, {"text": "ok"})]
        result = HttpTranscriber("https://ocr.example").transcribe(b"png")
        assert result.text == "ok"
        assert mock_post.call_count == 2
        mock_sleep.assert_called_once_with(1.0)

    @patch("inkport.transcribe.time.sleep")
    @patch("inkport.transcribe.httpx.post")
    def test_retry_after_honoured(self, mock_post, mock_sleep):
        mock_post.side_effect = [_resp(503, headers={"retry-after": "7"}), _resp(200, {"text": "ok"})]
        HttpTranscriber("https://ocr.example").transcribe(b"png")
        mock_sleep.assert_called_once_with(7.0)

    @patch("inkport.transcribe.time.sleep")
    @patch("inkport.transcribe.httpx.post")
    def test_retries_exhausted(self, mock_post, mock_sleep):
        mock_post.return_value = _resp(500)
        with pytest.raises(TranscriptionFailed, match="HTTP 500"):
            HttpTranscriber("https://ocr.example", max_retries=2).transcribe(b"png")
        assert mock_post.call_count == 3

    @patch("inkport.transcribe.time.sleep")
    @patch("inkport.transcribe.httpx.post")
    def test_no_retries_returns_last_response(self, mock_post, mock_sleep):
        mock_post.return_value = _resp(503)
        with pytest.raises(TranscriptionFailed, match="HTTP 503"):
            HttpTranscriber("https://ocr.example", max_retries=0).transcribe(b"png")
        assert mock_post.call_count == 1
        mock_sleep.assert_not_called()

    @patch("inkport.transcribe.time.sleep")
    @patch("inkport.transcribe.httpx.post")
    def test_connect_error(self, mock_post, mock_sleep):
        mock_post.side_effect = httpx_mod.ConnectError("refused")
        with pytest.raises(TranscriptionFailed, match="unreachable"):
            HttpTranscriber("https://ocr.example", max_retries=1).transcribe(b"png")
        assert mock_post.call_count == 2

    @patch("inkport.transcribe.time.sleep")
    @patch("inkport.transcribe.httpx.post")
    def test_non_json(self, mock_post, mock_sleep):
        resp = _resp(200)
        resp.json.side_effect = ValueError("bad")
        mock_post.return_value = resp
        with pytest.raises(TranscriptionFailed, match="not JSON"):
            HttpTranscriber("https://ocr.example").transcribe(b"png")


class TestBuildTranscriber:
    def test_disabled(self):
        assert build_transcriber(ImportConfig()) is None

    def test_enabled_without_endpoint(self):
        cfg = ImportConfig(transcription=TranscriptionConfig(enabled=True))
        assert build_transcriber(cfg) is None

    def test_key_from_env(self, monkeypatch):
        monkeypatch.setenv("INKPORT_TRANSCRIBE_KEY", "secret")
        cfg = ImportConfig(transcription=TranscriptionConfig(enabled=True, endpoint="https://x"))
        t = build_transcriber(cfg)
        assert isinstance(t, HttpTranscriber)
        assert t.api_key == "secret"
