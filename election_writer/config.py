# election_writer/config.py
import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import ConfigError

GWEI = 10**9
ETHER = 10**18

# -------- Defaults (non-secret) --------
_DEFAULT: Dict[str, Any] = {
    "virtual_chain_endpoint_schema": "http://vchain-{{ID}}:8080",
    "vchain_reputations_path": "/reputations",
    "status_json_path": "./status/status.json",
    "status_keep_backups": 1,
    "ethereum_chain_id": None,
    "http_timeout_seconds": 20.0,
    # polling cadence
    "run_loop_poll_time_seconds": 2 * 60,
    "management_poll_time_seconds": 2 * 60,
    "vchain_metrics_poll_time_seconds": 5 * 60,
    "vchain_reputations_poll_time_seconds": 5 * 60,
    "ethereum_balance_poll_time_seconds": 4 * 60 * 60,
    "ethereum_can_join_committee_poll_time_seconds": 10 * 60,
    # workload chain sync
    "vchain_uptime_required_seconds": 5,
    "vchain_sync_threshold_seconds": 5 * 60,
    "vchain_out_of_sync_threshold_seconds": 60 * 60,
    "vchain_stuck_threshold_seconds": 2 * 60 * 60,
    # write channel
    "ethereum_sync_requirement_seconds": 20 * 60,
    "fail_to_sync_vcs_timeout_seconds": 24 * 60 * 60,
    # elections
    "elections_refresh_window_seconds": 2 * 60 * 60,
    "elections_audit_only": False,
    "max_standbys": 5,
    # removal votes
    "invalid_reputation_grace_seconds": 30 * 60 * 60,
    "invalid_reputation_threshold": 4,
    "valid_reputation_threshold": 2,
    "vote_unready_validity_seconds": 7 * 24 * 60 * 60,
    "vote_out_validity_seconds": 7 * 24 * 60 * 60,
    "suspend_vote_unready": False,
    "suspend_vote_out": True,
    # transactions
    "ethereum_discount_gas_price_factor": 0.75,
    "ethereum_discount_tx_timeout_seconds": 10 * 60,
    "ethereum_non_discount_tx_timeout_seconds": 60 * 60,
    "ethereum_max_gas_price": 500 * GWEI,
    "ethereum_max_committed_daily_tx": 4,
    "ethereum_max_successful_daily_tx": 4,
    "ethereum_min_balance": ETHER // 10,
    "logging": {"level": "INFO"},
}


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


# -------- ENV overrides --------
# Endpoints and addresses usually come from the deployment environment.
_ENV_MAP = {
    "management_service_endpoint": ("ELECTION_WRITER_MANAGEMENT_ENDPOINT", str),
    "ethereum_endpoint": ("ELECTION_WRITER_ETHEREUM_ENDPOINT", str),
    "signer_endpoint": ("ELECTION_WRITER_SIGNER_ENDPOINT", str),
    "ethereum_elections_contract": ("ELECTION_WRITER_ELECTIONS_CONTRACT", str),
    "node_orbs_address": ("ELECTION_WRITER_NODE_ADDRESS", str),
    "status_json_path": ("ELECTION_WRITER_STATUS_PATH", str),
    "elections_audit_only": ("ELECTION_WRITER_AUDIT_ONLY", _as_bool),
    "run_loop_poll_time_seconds": ("ELECTION_WRITER_RUN_LOOP_SECONDS", int),
}


class Configuration(BaseModel):
    """Validated runtime configuration. All durations are seconds."""

    management_service_endpoint: str = Field(..., min_length=1)
    ethereum_endpoint: str = Field(..., min_length=1)
    signer_endpoint: str = Field(..., min_length=1)
    ethereum_elections_contract: str = Field(..., min_length=1)
    node_orbs_address: str = Field(..., min_length=1, description="Internal (workload) address of this node.")
    virtual_chain_endpoint_schema: str
    vchain_reputations_path: str
    status_json_path: str
    status_keep_backups: int = Field(..., ge=0)
    ethereum_chain_id: Optional[int] = None
    http_timeout_seconds: float = Field(..., gt=0)

    run_loop_poll_time_seconds: float = Field(..., gt=0)
    management_poll_time_seconds: int = Field(..., ge=0)
    vchain_metrics_poll_time_seconds: int = Field(..., ge=0)
    vchain_reputations_poll_time_seconds: int = Field(..., ge=0)
    ethereum_balance_poll_time_seconds: int = Field(..., ge=0)
    ethereum_can_join_committee_poll_time_seconds: int = Field(..., ge=0)

    vchain_uptime_required_seconds: int = Field(..., ge=0)
    vchain_sync_threshold_seconds: int = Field(..., gt=0)
    vchain_out_of_sync_threshold_seconds: int = Field(..., gt=0)
    vchain_stuck_threshold_seconds: int = Field(..., gt=0)

    ethereum_sync_requirement_seconds: int = Field(..., gt=0)
    fail_to_sync_vcs_timeout_seconds: int = Field(..., gt=0)

    elections_refresh_window_seconds: int = Field(..., ge=0)
    elections_audit_only: bool
    max_standbys: int = Field(..., ge=0)

    invalid_reputation_grace_seconds: int = Field(..., ge=0)
    invalid_reputation_threshold: int
    valid_reputation_threshold: int
    vote_unready_validity_seconds: int = Field(..., ge=0)
    vote_out_validity_seconds: int = Field(..., ge=0)
    suspend_vote_unready: bool
    suspend_vote_out: bool

    ethereum_discount_gas_price_factor: float = Field(..., gt=0, le=1)
    ethereum_discount_tx_timeout_seconds: int = Field(..., gt=0)
    ethereum_non_discount_tx_timeout_seconds: int = Field(..., gt=0)
    ethereum_max_gas_price: int = Field(..., gt=0)
    ethereum_max_committed_daily_tx: int = Field(..., ge=0)
    ethereum_max_successful_daily_tx: int = Field(..., ge=0)
    ethereum_min_balance: int = Field(..., ge=0)

    logging: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "Configuration":
        if self.vchain_out_of_sync_threshold_seconds < self.vchain_sync_threshold_seconds:
            raise ValueError("vchain_out_of_sync_threshold_seconds must be >= vchain_sync_threshold_seconds")
        return self

    def to_public_dict(self) -> Dict[str, Any]:
        return self.model_dump()


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (overlay or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for key, (env_name, cast) in _ENV_MAP.items():
        val = os.getenv(env_name)
        if val is None:
            continue
        try:
            cfg[key] = cast(val)
        except ValueError as e:
            raise ConfigError(f"{env_name}={val!r}: {e}") from e
    return cfg


def build_config(overrides: Optional[Dict[str, Any]] = None) -> Configuration:
    """Validate ``overrides`` merged over the defaults (no file, no ENV)."""
    raw = _deep_merge(_DEFAULT, overrides or {})
    try:
        return Configuration.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(str(e)) from e


def load_config(path: Optional[str] = None) -> Configuration:
    """
    Defaults, then the YAML file at ``path`` (if given), then ENV overrides.
    Unlike node-side config, a broken file is an error: the writer must not
    start on guessed endpoints.
    """
    cfg: Dict[str, Any] = dict(_DEFAULT)

    if path:
        if not os.path.exists(path):
            raise ConfigError(f"config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        cfg = _deep_merge(cfg, data)

    cfg = _apply_env_overrides(cfg)
    return build_config(cfg)


def get_log_level(cfg: Configuration) -> str:
    return str(cfg.logging.get("level", "INFO")).upper()
