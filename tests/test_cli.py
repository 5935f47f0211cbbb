import pytest

import cli
from config import Settings


def test_server_url_uses_loopback_for_wildcard_host():
    assert cli.server_url(Settings({"host": "0.0.0.0", "port": 8080})) == "http://127.0.0.1:8080"
    assert cli.server_url(Settings({"host": "example.local"})) == "http://example.local:3001"


def test_format_track():
    assert cli.format_track({"playing": True, "name": "Song", "artist": "Band", "album": "LP"}) == "Song - Band (LP)"
    assert cli.format_track({"playing": False, "name": "Song", "artist": "Band"}) == "Song - Band [paused]"
    assert cli.format_track({"playing": False, "message": "No song currently playing"}) == "No song currently playing"


def test_main_dispatches_command(monkeypatch):
    called = []
    monkeypatch.setitem(cli.COMMANDS, "version", lambda: called.append("version"))
    cli.main(["version"])
    assert called == ["version"]


def test_main_rejects_unknown_command():
    with pytest.raises(SystemExit):
        cli.main(["dance"])


def test_logout_clears_token_file(monkeypatch, tmp_path, capsys):
    token_file = tmp_path / "tokens.json"
    token_file.write_text('{"id": "user_tokens", "access_token": "a", "refresh_token": "r"}')
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TOKEN_STORE", "file")
    monkeypatch.setenv("TOKEN_FILE", str(token_file))

    cli.cmd_logout()

    assert not token_file.exists()
    assert str(token_file) in capsys.readouterr().out
