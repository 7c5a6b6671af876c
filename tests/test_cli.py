"""Tests for tidings.cli — argument parsing and command dispatch."""

import json

import pytest

from tidings import cli


@pytest.fixture(autouse=True)
def isolated_dirs(monkeypatch, tmp_path):
    monkeypatch.setenv("TIDINGS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TIDINGS_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("TIDINGS_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("TIDINGS_VECTOR_PATH", ":memory:")
    monkeypatch.setenv("TIDINGS_CLASSIFIER_ENABLED", "false")
    monkeypatch.delenv("TIDINGS_CONFIG", raising=False)
    monkeypatch.delenv("TIDINGS_GMAIL_TOKEN", raising=False)


def test_parser_commands():
    parser = cli.build_parser()
    args = parser.parse_args(["search", "다음주 회의", "--limit", "3", "--json"])
    assert (args.command, args.question, args.limit, args.json) == ("search", "다음주 회의", 3, True)

    args = parser.parse_args(["--log-level", "debug", "sync-gmail", "--full"])
    assert args.full is True
    assert args.token is None
    assert args.log_level == "debug"

    with pytest.raises(SystemExit):
        parser.parse_args(["ingest", "fax"])


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage: tidings" in capsys.readouterr().out


def test_ingest_then_stats(capsys):
    code = cli.main(["ingest", "push", "--title", "택배", "--body", "내일 도착 예정", "--external-id", "n1"])
    out = capsys.readouterr().out
    assert code == 0
    assert out.startswith("new: push:n1 (note, classifier failed)")

    assert cli.main(["ingest", "push", "--title", "택배", "--external-id", "n1"]) == 0
    assert capsys.readouterr().out.startswith("duplicate: push:n1")

    assert cli.main(["stats", "--json"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["records"] == 1
    assert stats["by_source"]["push"] == 1


def test_search_output(capsys):
    cli.main(["ingest", "sms", "--title", "배송 알림", "--body", "오늘 도착", "--external-id", "s1"])
    capsys.readouterr()

    assert cli.main(["search", "배송", "--json"]) == 0
    items = json.loads(capsys.readouterr().out)
    assert items[0]["id"] == "sms:s1"
    assert items[0]["position"] == 1

    assert cli.main(["search", "배송", "--limit", "0"]) == 2
    assert "limit must be positive" in capsys.readouterr().err


def test_search_empty_store(capsys):
    assert cli.main(["search", "anything"]) == 0
    assert "No matching records." in capsys.readouterr().out


def test_plan_json(capsys):
    assert cli.main(["plan", "이메일 확인", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["source"] == "email"
    assert payload["start"] is None


def test_sync_gmail_without_token_fails(capsys):
    assert cli.main(["sync-gmail"]) == 1
    captured = capsys.readouterr()
    assert "Gmail sync unauthorized" in captured.out
    assert "no Gmail access token" in captured.err


def test_reset_sync(capsys):
    assert cli.main(["reset-sync", "email"]) == 0
    assert "Sync cursor cleared for email." in capsys.readouterr().out


def test_yaml_config(tmp_path, monkeypatch, capsys):
    config_path = tmp_path / "custom.yaml"
    config_path.write_text(
        f"data_dir: '{(tmp_path / 'other').as_posix()}'\n"
        f"store:\n  path: '{(tmp_path / 'other' / 'records.db').as_posix()}'\n"
        f"cursor:\n  path: '{(tmp_path / 'other' / 'sync.json').as_posix()}'\n"
        "vector:\n  path: ':memory:'\n"
        "classifier:\n  enabled: false\n",
        encoding="utf-8",
    )
    assert cli.main(["--config", str(config_path), "ingest", "ocr", "--body", "영수증"]) == 0
    capsys.readouterr()
    assert (tmp_path / "other" / "records.db").exists()
