import json

from scripts.validate_config import validate


def test_valid_config_passes(tmp_path, capsys):
    path = tmp_path / "streaming.json"
    path.write_text(json.dumps({"retry": {"max_retries": 3}}), encoding="utf-8")

    assert validate(path) == 0
    assert "[CONFIG OK]" in capsys.readouterr().out


def test_schema_violation_fails(tmp_path, capsys):
    path = tmp_path / "streaming.json"
    path.write_text(json.dumps({"cache": {"ttl_seconds": -1}}), encoding="utf-8")

    assert validate(path) == 1
    assert "cache/ttl_seconds" in capsys.readouterr().err


def test_missing_file_is_not_an_error(tmp_path):
    assert validate(tmp_path / "absent.json") == 0
