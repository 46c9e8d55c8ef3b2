"""
Workload-chain health reader.

Each chain's ``/metrics`` document is read independently. A chain that fails
gets sentinel metrics (-1 everywhere) so the sync state machine sees it as
not up; the other chains are unaffected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import WorkloadReadError
from ..runtime.state import NodeState, WorkloadMetrics

log = logging.getLogger(__name__)


def chain_endpoint(chain_id: str, endpoint_schema: str) -> str:
    return endpoint_schema.replace("{{ID}}", str(chain_id)).rstrip("/")


class _Value(BaseModel):
    model_config = ConfigDict(extra="ignore")

    Value: float


class MetricsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    block_height: _Value = Field(..., alias="BlockStorage.BlockHeight")
    last_committed_time_nano: _Value = Field(..., alias="BlockStorage.LastCommitted.TimeNano")
    uptime_seconds: _Value = Field(..., alias="Runtime.Uptime.Seconds")


@dataclass
class RawMetrics:
    block_height: int
    last_commit_time_nanos: int
    uptime_seconds: int


def fetch_workload_metrics(url: str, timeout: float = 20.0) -> RawMetrics:
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise WorkloadReadError(f"GET {url} failed: {e}") from e
    if not resp.ok:
        raise WorkloadReadError(f"GET {url} returned HTTP-{resp.status_code}")
    try:
        m = MetricsModel.model_validate_json(resp.text)
    except ValidationError as e:
        raise WorkloadReadError(f"Invalid metrics response for {url}: {e}") from e
    return RawMetrics(
        block_height=int(m.block_height.Value),
        last_commit_time_nanos=int(m.last_committed_time_nano.Value),
        uptime_seconds=int(m.uptime_seconds.Value),
    )


def to_metrics(raw: RawMetrics, previous: Optional[WorkloadMetrics], now: int) -> WorkloadMetrics:
    last_commit_time = now
    if previous is not None and previous.last_block_height >= raw.block_height and previous.last_commit_time > 0:
        # height did not advance since the last read
        last_commit_time = previous.last_commit_time
    return WorkloadMetrics(
        last_block_height=raw.block_height,
        last_block_time=raw.last_commit_time_nanos // 1_000_000_000,
        uptime_seconds=raw.uptime_seconds,
        last_commit_time=last_commit_time,
    )


def read_all_workload_metrics(endpoint_schema: str, state: NodeState, now: int, timeout: float = 20.0) -> int:
    """Refresh metrics for every chain the registry knows. Returns the number of chains read."""
    fresh: Dict[str, WorkloadMetrics] = {}
    successful = 0
    for chain_id in state.workload_chains:
        url = f"{chain_endpoint(chain_id, endpoint_schema)}/metrics"
        try:
            raw = fetch_workload_metrics(url, timeout=timeout)
        except WorkloadReadError as e:
            log.warning("workload chain %s metrics unavailable: %s", chain_id, e)
            fresh[chain_id] = WorkloadMetrics.unavailable()
            continue
        fresh[chain_id] = to_metrics(raw, state.workload_metrics.get(chain_id), now)
        successful += 1

    state.workload_metrics = fresh
    state.workload_metrics_last_poll_time = now
    log.info("Fetched workload chain metrics, chains succeeded: %d/%d.", successful, len(state.workload_chains))
    return successful
