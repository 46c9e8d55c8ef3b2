"""
election_writer/write/transactions.py
-------------------------------------

Submission and receipt tracking for the writer's four transaction types.

Sending never raises for ordinary failures (RPC error, signer down, bad gas
price): the attempt is recorded as ``failed-send`` and the write channel
machine deals with it on the next tick. A signer answer without a raw tx or
hash is a broken invariant and propagates.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import Configuration
from ..errors import BaseChainRpcError, GasPriceError, SignerError, SignerRequestError
from ..runtime.clock import today
from ..runtime.state import CommitteeMember, NodeState, TxState, TxStatus, TxType, increment_daily
from ..runtime.tx_lifecycle import calc_gas_price, gas_price_strategy, handle_pending_tx_timeout, record_fee, tx_fee
from .base_chain import BaseChainClient, ElectionsContract, to_base_address
from .signer import SignerClient

log = logging.getLogger(__name__)


class TxSender:
    """Everything needed to get one contract call signed and broadcast."""

    def __init__(
        self,
        config: Configuration,
        chain: BaseChainClient,
        contract: ElectionsContract,
        signer: SignerClient,
    ) -> None:
        self.config = config
        self.chain = chain
        self.contract = contract
        self.signer = signer
        self.sender = config.node_orbs_address
        self._chain_id: Optional[int] = config.ethereum_chain_id

    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self.chain.get_chain_id()
        return self._chain_id

    def submit(
        self,
        tx_type: TxType,
        data: str,
        previous: Optional[TxStatus],
        state: NodeState,
        now: int,
        subject: str = "",
    ) -> TxStatus:
        strategy = gas_price_strategy(previous)
        status = TxStatus(
            type=tx_type,
            send_time=now,
            gas_price_strategy=strategy,
            gas_price=0,
            status=TxState.FAILED_SEND,
            subject=subject,
        )
        try:
            status.gas_price = calc_gas_price(strategy, self.chain.get_gas_price(), self.config)
            # nonce from the mined state, ignoring the pending pool
            nonce = self.chain.get_transaction_count(self.sender, "latest")
            gas = self.contract.gas_limit(self.sender, data)
            tx_fields = {
                "from": to_base_address(self.sender),
                "to": self.contract.address,
                "gasPrice": status.gas_price,
                "gas": gas,
                "data": data,
                "nonce": nonce,
            }
            signed = self.signer.sign(tx_fields, self.chain_id())
            if not signed.raw_transaction or not signed.tx_hash:
                raise SignerError(f"Signer returned no raw tx or hash for {tx_type.value} tx with nonce {nonce}.")
            sent_hash = self.chain.send_raw_transaction(signed.raw_transaction)
        except (BaseChainRpcError, GasPriceError, SignerRequestError) as e:
            log.error("Failed sending %s tx: %s", tx_type.value, e)
            return status

        if sent_hash and sent_hash != signed.tx_hash:
            log.warning("Node returned tx hash %s, signer computed %s.", sent_hash, signed.tx_hash)

        status.tx_hash = signed.tx_hash
        status.status = TxState.PENDING
        increment_daily(state.committed_tx_stats, today(now))
        log.info(
            "Sent %s tx %s (gas price %s, strategy %s%s).",
            tx_type.value,
            status.tx_hash,
            status.gas_price,
            strategy.value,
            f", subject {subject}" if subject else "",
        )
        return status


# ---------------------------------------------------------------------------
# The four transactions
# ---------------------------------------------------------------------------


def send_elections_tx(tx_type: TxType, sender: TxSender, state: NodeState, now: int) -> TxStatus:
    if tx_type == TxType.READY_TO_SYNC:
        data = sender.contract.ready_to_sync_data()
    elif tx_type == TxType.READY_FOR_COMMITTEE:
        data = sender.contract.ready_for_committee_data()
    else:
        raise ValueError(f"not an elections tx type: {tx_type}")

    status = sender.submit(tx_type, data, state.last_elections_tx, state, now)
    state.last_elections_tx = status
    return status


def send_vote_unready_tx(member: CommitteeMember, sender: TxSender, state: NodeState, now: int) -> TxStatus:
    expiration = now + sender.config.vote_unready_validity_seconds
    data = sender.contract.vote_unready_data(member.address, expiration)
    status = sender.submit(TxType.VOTE_UNREADY, data, state.last_vote_unready_tx, state, now, member.address)
    state.last_vote_unready_tx = status
    return status


def send_vote_out_tx(member: CommitteeMember, sender: TxSender, state: NodeState, now: int) -> TxStatus:
    data = sender.contract.vote_out_data(member.address)
    status = sender.submit(TxType.VOTE_OUT, data, state.last_vote_out_tx, state, now, member.address)
    state.last_vote_out_tx = status
    return status


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------


def read_pending_tx_status(
    tx: Optional[TxStatus], state: NodeState, config: Configuration, chain: BaseChainClient, now: int
) -> None:
    """
    Advance a pending tx: timeout first, then receipt, then finality against
    the registry reference block. Only a final tx counts as successful.
    """
    if tx is None or tx.status != TxState.PENDING:
        return
    if handle_pending_tx_timeout(tx, state, config, now):
        return

    receipt = chain.get_transaction_receipt(tx.tx_hash)
    tx.last_poll_time = now
    if receipt is None:
        return

    tx.base_block = receipt.block_number
    if receipt.status == 0:
        tx.status = TxState.REVERT
        log.error("Last %s tx %s reverted in block %s.", tx.type.value, tx.tx_hash, receipt.block_number)
        return

    if receipt.block_number > state.registry_ref_block:
        # mined, but the registry has not caught up with that block yet
        return

    tx.status = TxState.FINAL
    increment_daily(state.successful_tx_stats, today(now))
    record_fee(state, tx_fee(tx.gas_price, receipt.gas_used), now)
    state.consecutive_tx_timeouts = 0
    if tx.type == TxType.VOTE_UNREADY and tx.subject:
        state.last_vote_unready_time[tx.subject] = tx.send_time
    elif tx.type == TxType.VOTE_OUT and tx.subject:
        state.last_vote_out_time[tx.subject] = tx.send_time
    log.info("Last %s tx %s is final (block %s).", tx.type.value, tx.tx_hash, receipt.block_number)


def read_balance(sender: TxSender, state: NodeState, now: int) -> None:
    balance = sender.chain.get_balance(sender.sender)
    state.base_balance = str(balance)
    state.base_balance_last_poll_time = now
    log.info("Fetched base chain balance: %s wei.", balance)


def check_can_join_committee(sender: TxSender, state: NodeState, now: int) -> bool:
    can_join = sender.contract.can_join_committee(sender.sender)
    state.can_join_committee_last_poll_time = now
    log.info("canJoinCommittee for %s: %s.", sender.sender, can_join)
    return can_join
