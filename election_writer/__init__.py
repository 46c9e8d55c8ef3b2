"""
election_writer
---------------

Validator-node sidecar that keeps the node's on-chain election status in
line with its observed health (registry view, workload chains, base chain).
"""

__version__ = "1.4.0"
