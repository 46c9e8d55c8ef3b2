"""
Transaction lifecycle helpers: gas-price strategy, pending-timeout
escalation and fee bookkeeping. Nothing here talks to the network.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import Configuration
from ..errors import GasPriceError
from .clock import ten_day_period
from .state import GasPriceStrategy, NodeState, TxState, TxStatus

log = logging.getLogger(__name__)


def gas_price_strategy(previous: Optional[TxStatus]) -> GasPriceStrategy:
    """Discount only after a clean outcome; anything else pays the market price."""
    if previous is None:
        return GasPriceStrategy.DISCOUNT
    if previous.status == TxState.FINAL:
        return GasPriceStrategy.DISCOUNT
    return GasPriceStrategy.RECOMMENDED


def calc_gas_price(strategy: GasPriceStrategy, recommended: int, config: Configuration) -> int:
    if recommended <= 0:
        raise GasPriceError(f"Cannot use recommended gas price {recommended}.")

    price = recommended
    if strategy == GasPriceStrategy.DISCOUNT:
        price = int(round(config.ethereum_discount_gas_price_factor * recommended))
    if price > config.ethereum_max_gas_price:
        log.error("Gas price %s surpassed maximum allowed %s.", price, config.ethereum_max_gas_price)
        price = config.ethereum_max_gas_price
    return price


def handle_pending_tx_timeout(
    tx: Optional[TxStatus], state: NodeState, config: Configuration, now: int
) -> bool:
    """
    Mark a stuck pending tx as ``timeout``. Returns True if it timed out now.

    ``consecutive_tx_timeouts`` is only ever incremented here; the receipt
    tracker resets it on the next final tx.
    """
    if tx is None:
        return False
    if tx.base_block > 0:
        return False
    if tx.status != TxState.PENDING:
        return False

    if tx.gas_price_strategy == GasPriceStrategy.DISCOUNT:
        timeout = config.ethereum_discount_tx_timeout_seconds
    else:
        timeout = config.ethereum_non_discount_tx_timeout_seconds
    if now - tx.send_time > timeout:
        log.error(
            "Last %s tx %s timed out with gas price %s.", tx.type.value, tx.tx_hash, tx.gas_price
        )
        tx.status = TxState.TIMEOUT
        state.consecutive_tx_timeouts += 1
        return True
    return False


def tx_fee(gas_price: int, gas_used: int) -> int:
    """Fee in wei."""
    return int(gas_price) * int(gas_used)


def record_fee(state: NodeState, fee: int, now: int) -> None:
    period = ten_day_period(now)
    state.fees_stats[period] = state.fees_stats.get(period, 0) + fee
