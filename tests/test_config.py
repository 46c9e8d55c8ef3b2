# tests/test_config.py

import pytest

from conftest import REQUIRED
from election_writer.config import build_config, get_log_level, load_config
from election_writer.errors import ConfigError


def _write_yaml(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def _yaml_required():
    return "".join(f"{k}: \"{v}\"\n" for k, v in REQUIRED.items())


def test_defaults_fill_everything_but_required():
    cfg = build_config(dict(REQUIRED))
    assert cfg.management_poll_time_seconds == 120
    assert cfg.max_standbys == 5
    assert cfg.suspend_vote_out is True
    assert cfg.ethereum_discount_tx_timeout_seconds < cfg.ethereum_non_discount_tx_timeout_seconds
    assert get_log_level(cfg) == "INFO"


def test_missing_required_field_rejected():
    raw = dict(REQUIRED)
    del raw["signer_endpoint"]
    with pytest.raises(ConfigError):
        build_config(raw)


def test_far_threshold_below_near_rejected():
    with pytest.raises(ConfigError):
        build_config(dict(REQUIRED, vchain_sync_threshold_seconds=600, vchain_out_of_sync_threshold_seconds=300))


def test_discount_factor_range():
    with pytest.raises(ConfigError):
        build_config(dict(REQUIRED, ethereum_discount_gas_price_factor=1.5))


def test_yaml_merges_over_defaults(tmp_path):
    path = _write_yaml(tmp_path, _yaml_required() + "max_standbys: 3\nlogging:\n  level: debug\n")
    cfg = load_config(path)
    assert cfg.max_standbys == 3
    assert cfg.management_poll_time_seconds == 120
    assert get_log_level(cfg) == "DEBUG"


def test_env_overrides_file(tmp_path, monkeypatch):
    path = _write_yaml(tmp_path, _yaml_required())
    monkeypatch.setenv("ELECTION_WRITER_AUDIT_ONLY", "yes")
    monkeypatch.setenv("ELECTION_WRITER_RUN_LOOP_SECONDS", "15")
    monkeypatch.setenv("ELECTION_WRITER_SIGNER_ENDPOINT", "http://other-signer")
    cfg = load_config(path)
    assert cfg.elections_audit_only is True
    assert cfg.run_loop_poll_time_seconds == 15
    assert cfg.signer_endpoint == "http://other-signer"


def test_bad_env_value_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("ELECTION_WRITER_RUN_LOOP_SECONDS", "soon")
    with pytest.raises(ConfigError):
        load_config(_write_yaml(tmp_path, _yaml_required()))


def test_missing_file_rejected(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "nope.yaml"))


def test_invalid_yaml_rejected(tmp_path):
    with pytest.raises(ConfigError):
        load_config(_write_yaml(tmp_path, "a: [1, 2\n"))


def test_non_mapping_yaml_rejected(tmp_path):
    with pytest.raises(ConfigError):
        load_config(_write_yaml(tmp_path, "- 1\n- 2\n"))
