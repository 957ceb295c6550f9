"""Tests for the command-line chat client."""

import json

import respx

from chatrelay.client.__main__ import build_parser, main
from tests.helpers import sse_body

RELAY_URL = "http://relay.test/chat"


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.message is None
        assert not args.clear

    def test_all_options(self, tmp_path):
        args = build_parser().parse_args(
            ["hi", "--clear", "--context-file", str(tmp_path / "p.txt"), "--url", RELAY_URL]
        )
        assert args.message == "hi"
        assert args.clear
        assert args.context_file.name == "p.txt"
        assert args.url == RELAY_URL


class TestMain:
    @respx.mock
    def test_message_streamed_to_stdout(self, tmp_path, capsys):
        respx.post(RELAY_URL).respond(200, content=sse_body({"content": "Hi "}, {"content": "there"}))
        history_path = tmp_path / "history.json"

        code = main(["Hello", "--url", RELAY_URL, "--history", str(history_path)])

        assert code == 0
        assert capsys.readouterr().out == "Hi there\n"
        assert json.loads(history_path.read_text(encoding="utf-8"))[-1] == {
            "role": "assistant",
            "content": "Hi there",
        }

    @respx.mock
    def test_context_file_sent(self, tmp_path):
        route = respx.post(RELAY_URL).respond(200, content=sse_body({"content": "ok"}))
        page = tmp_path / "page.txt"
        page.write_text("Page text", encoding="utf-8")

        main(
            [
                "Hi",
                "--url",
                RELAY_URL,
                "--history",
                str(tmp_path / "h.json"),
                "--context-file",
                str(page),
            ]
        )

        assert json.loads(route.calls.last.request.content)["context"] == "Page text"

    @respx.mock
    def test_relay_request_has_no_read_timeout(self, tmp_path):
        route = respx.post(RELAY_URL).respond(
            200, content=sse_body({"status": "processing"}, {"content": "ok"})
        )

        assert main(["Hi", "--url", RELAY_URL, "--history", str(tmp_path / "h.json")]) == 0
        assert route.calls.last.request.extensions["timeout"]["read"] is None

    @respx.mock
    def test_error_exit_code(self, tmp_path, capsys):
        respx.post(RELAY_URL).respond(
            200, content=sse_body({"error": "API key required", "code": "E_CONFIGURATION"})
        )

        code = main(["Hi", "--url", RELAY_URL, "--history", str(tmp_path / "h.json")])

        assert code == 1
        assert "error: API key required" in capsys.readouterr().err

    def test_clear_without_message(self, tmp_path):
        history_path = tmp_path / "history.json"
        history_path.write_text('[{"role": "user", "content": "old"}]', encoding="utf-8")

        assert main(["--clear", "--history", str(history_path)]) == 0
        assert json.loads(history_path.read_text(encoding="utf-8")) == []

    def test_missing_message(self, tmp_path, capsys):
        assert main(["--history", str(tmp_path / "h.json")]) == 2
        assert "a message is required" in capsys.readouterr().err
