"""
Shared fixtures: checksummed addresses, constant product pairs with fixed reserves and a linear test market.
"""
import pytest
from unittest.mock import MagicMock
from eth_account import Account
from web3 import Web3

from constants import ETHER, WETH
from dex.market import Pool
from dex.uniswapv2 import UniswapV2Pair
from utils import sort_tokens


def address(byte: str) -> str:
    return Web3.to_checksum_address('0x' + byte * 20)


def make_pair(pair_address: str, token: str, weth_reserve: int, token_reserve: int, protocol: str='UniswapV2') -> UniswapV2Pair:
    pair = UniswapV2Pair(pair_address, sort_tokens(WETH, token), protocol)
    reserves = {WETH: weth_reserve, token: token_reserve}
    pair.set_params(*[reserves[t] for t in pair.tokens])
    return pair


class LinearMarket(Pool):
    """ Buys tokens 1:1 for weth and pays `bonus` extra weth on every sale.
    """

    protocol = 'Linear'

    def __init__(self, market_address: str, token: str, bonus: int=0):
        super().__init__(market_address, (token, WETH))
        self._bonus = bonus

    def get_out_amount(self, in_amount, token_pair):
        if token_pair[0] == WETH:
            return in_amount
        return in_amount + self._bonus

    def get_in_amount(self, out_amount, token_pair):
        if token_pair[1] == WETH:
            return out_amount - self._bonus
        return out_amount


@pytest.fixture
def token_x():
    return address('22')


@pytest.fixture
def token_y():
    return address('33')


@pytest.fixture
def executor_address():
    return address('44')


@pytest.fixture
def pool1(token_x):
    """1 WETH buys ~100 X."""
    return make_pair(address('a1'), token_x, 100 * ETHER, 10000 * ETHER)


@pytest.fixture
def pool2(token_x):
    """1 WETH buys ~90 X."""
    return make_pair(address('a2'), token_x, 100 * ETHER, 9000 * ETHER, protocol='Sushiswap')


@pytest.fixture
def executor_wallet():
    return Account.from_key('0x' + '12' * 32)


@pytest.fixture
def relay_signer():
    return Account.from_key('0x' + '34' * 32)


@pytest.fixture
def mock_geth():
    return MagicMock()


@pytest.fixture
def mock_relay():
    return MagicMock()
