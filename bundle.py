import logging
from dataclasses import dataclass
from typing import List, Optional

from eth_abi import encode
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.types import TxParams

from arbitrage import CrossedMarket
from constants import BLOCKS_IN_THE_FUTURE, DECOY_GAS_LIMIT, PRIORITY_FEE, SETTLEMENT_GAS_LIMIT
from exceptions import UnsupportedFeeMarket
from flashbots import get_max_base_fee_in_future_block
from utils import sig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeParams:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int


@dataclass
class Bundle:
    crossed_market: CrossedMarket
    targets: List[ChecksumAddress]
    payloads: List[HexBytes]
    miner_reward: int
    settlement: TxParams
    decoy: TxParams


def fee_params(base_fee: Optional[int],
               priority_fee: int=PRIORITY_FEE,
               blocks_in_the_future: int=BLOCKS_IN_THE_FUTURE) -> FeeParams:
    if base_fee is None:
        raise UnsupportedFeeMarket("This chain is not EIP-1559 enabled")
    max_base_fee = get_max_base_fee_in_future_block(base_fee, blocks_in_the_future)
    return FeeParams(max_fee_per_gas=priority_fee + max_base_fee, max_priority_fee_per_gas=priority_fee)


class BundleBuilder:
    """ Turns a crossed market into the executor settlement call plus a self transfer decoy.

    The executor contract sends volume weth to targets[0], runs every (target, payload) call and pays
    miner_reward to the block's coinbase.
    """

    _uniswap_weth_sig = sig('uniswapWeth(uint256,uint256,address[],bytes[])')

    def __init__(self, executor_address: ChecksumAddress, wallet_address: ChecksumAddress, weth: ChecksumAddress):
        self.executor_address = executor_address
        self.wallet_address = wallet_address
        self._weth = weth

    def get_calls(self, crossed_market: CrossedMarket):
        buy_from = crossed_market.buy_from_market
        sell_to = crossed_market.sell_to_market
        buy_calls = buy_from.sell_tokens_to_next_market(self._weth, crossed_market.volume, sell_to)
        inter = buy_from.get_out_amount(crossed_market.volume, (self._weth, crossed_market.token_address))
        sell_call_data = sell_to.sell_tokens(crossed_market.token_address, inter, self.executor_address)

        targets = list(buy_calls.targets) + [sell_to.address]
        payloads = list(buy_calls.data) + [sell_call_data]
        return targets, payloads

    def settlement_data(self, volume: int, miner_reward: int, targets: List[ChecksumAddress], payloads: List[HexBytes]) -> HexBytes:
        args = [volume, miner_reward, targets, [bytes(payload) for payload in payloads]]
        return HexBytes(self._uniswap_weth_sig + encode(['uint256', 'uint256', 'address[]', 'bytes[]'], args))

    def build(self, crossed_market: CrossedMarket, miner_reward_percentage: int, base_fee: Optional[int], chain_id: int) -> Bundle:
        if not 0 <= miner_reward_percentage <= 100:
            raise ValueError(f"miner reward percentage must be within 0-100, got {miner_reward_percentage}")
        fees = fee_params(base_fee)

        targets, payloads = self.get_calls(crossed_market)
        logger.debug("targets %s payloads %s", targets, [Web3.to_hex(payload) for payload in payloads])
        miner_reward = crossed_market.profit * miner_reward_percentage // 100

        settlement = {
            'from': self.wallet_address,
            'to': self.executor_address,
            'value': 0,
            'data': Web3.to_hex(self.settlement_data(crossed_market.volume, miner_reward, targets, payloads)),
            'type': 2,
            'chainId': chain_id,
            'maxFeePerGas': fees.max_fee_per_gas,
            'maxPriorityFeePerGas': fees.max_priority_fee_per_gas,
            'gas': SETTLEMENT_GAS_LIMIT,
        }
        decoy = {
            'to': self.wallet_address,
            'value': 0,
            'data': '0x',
            'type': 2,
            'chainId': chain_id,
            'maxFeePerGas': fees.max_fee_per_gas,
            'maxPriorityFeePerGas': fees.max_priority_fee_per_gas,
            'gas': DECOY_GAS_LIMIT,
        }
        return Bundle(crossed_market=crossed_market,
                      targets=targets,
                      payloads=payloads,
                      miner_reward=miner_reward,
                      settlement=settlement,
                      decoy=decoy)
