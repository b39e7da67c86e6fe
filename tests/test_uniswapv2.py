"""
Tests for dex/uniswapv2.py - pair math, swap calldata and market discovery.
"""
import pytest
from unittest.mock import MagicMock
from eth_abi import decode
from web3 import Web3

from constants import ETHER, WETH, ZERO_ADDRESS
from dex.uniswapv2 import SushiswapPair, UniswapV2, UniswapV2Pair, update_reserves
from exceptions import InsufficientLiquidity
from utils import sig
from conftest import address, make_pair


SWAP_TYPES = ['uint256', 'uint256', 'address', 'bytes']


class TestUniswapV2Pair:

    def test_out_amount_matches_constant_product_with_fee(self, pool1, token_x):
        out_amount = pool1.get_out_amount(ETHER, (WETH, token_x))
        expected = (10000 * ETHER * 997 * ETHER) // (1000 * 100 * ETHER + 997 * ETHER)
        assert out_amount == expected

    def test_zero_in_amount(self, pool1, token_x):
        assert pool1.get_out_amount(0, (WETH, token_x)) == 0
        assert pool1.get_in_amount(0, (token_x, WETH)) == 0

    def test_in_amount_covers_requested_out_amount(self, pool1, token_x):
        in_amount = pool1.get_in_amount(ETHER, (token_x, WETH))
        assert pool1.get_out_amount(in_amount, (token_x, WETH)) >= ETHER
        assert pool1.get_out_amount(in_amount - 2, (token_x, WETH)) < ETHER

    def test_in_amount_beyond_reserves(self, pool1, token_x):
        with pytest.raises(InsufficientLiquidity):
            pool1.get_in_amount(100 * ETHER, (token_x, WETH))

    def test_unknown_token(self, pool1):
        with pytest.raises(ValueError):
            pool1.get_reserve(address('99'))

    def test_receive_directly(self, pool1, token_x):
        assert pool1.receive_directly(WETH)
        assert pool1.receive_directly(token_x)
        assert not pool1.receive_directly(address('99'))

    def test_sell_tokens_orders_amounts_by_token_index(self, pool1, token_x, executor_address):
        # token_x sorts before WETH, so it is token0
        assert pool1.tokens == (token_x, WETH)
        payload = pool1.sell_tokens(WETH, ETHER, executor_address)

        assert payload[:4] == sig('swap(uint256,uint256,address,bytes)')
        amount0_out, amount1_out, recipient, data = decode(SWAP_TYPES, payload[4:])
        assert amount0_out == pool1.get_out_amount(ETHER, (WETH, token_x))
        assert amount1_out == 0
        assert Web3.to_checksum_address(recipient) == executor_address
        assert data == b''

    def test_sell_tokens_to_next_market(self, pool1, pool2, token_x):
        call_data = pool1.sell_tokens_to_next_market(WETH, ETHER, pool2)

        assert call_data.targets == [pool1.address]
        _, _, recipient, _ = decode(SWAP_TYPES, call_data.data[0][4:])
        assert Web3.to_checksum_address(recipient) == pool2.address

    def test_sell_tokens_to_market_without_token(self, pool1, token_y):
        other = make_pair(address('b9'), token_y, 10 * ETHER, 10 * ETHER)
        with pytest.raises(ValueError):
            pool1.sell_tokens_to_next_market(WETH, ETHER, other)

    def test_param_calls(self, pool1):
        to_address, data, out_types, index = pool1.get_param_calls()
        assert to_address == pool1.address
        assert data == Web3.to_hex(sig('getReserves()'))
        assert out_types == ['uint112', 'uint112', 'uint32']
        assert index is None


def test_update_reserves(pool1, pool2, mock_geth, token_x):
    mock_geth.batch_request.return_value = [[1, 2, 0], [3, 4, 0]]
    update_reserves(mock_geth, [pool1, pool2])

    assert pool1.get_reserves((token_x, WETH)) == (1, 2)
    assert pool2.get_reserves((token_x, WETH)) == (3, 4)
    requests = mock_geth.batch_request.call_args[0][0]
    assert [request[0] for request in requests] == [pool1.address, pool2.address]


class TestUniswapV2Discovery:

    @pytest.fixture
    def factories(self):
        return {'UniswapV2': address('f0'), 'Sushiswap': address('f1')}

    def test_get_markets_by_token(self, mock_geth, factories, token_x, token_y):
        x_uni, x_sushi, y_uni = address('a1'), address('a2'), address('a3')
        pair_lookups = [x_uni.lower(), y_uni.lower(), x_sushi.lower(), ZERO_ADDRESS]
        reserves = [[10 * ETHER, 20 * ETHER, 0], [10 * ETHER, 20 * ETHER, 0], [10 * ETHER, 30 * ETHER, 0]]
        mock_geth.batch_request.side_effect = [pair_lookups, reserves]

        markets_by_token, all_pairs = UniswapV2(mock_geth, WETH, factories).get_markets_by_token([token_x, token_y, WETH])

        assert list(markets_by_token) == [token_x]
        x_markets = markets_by_token[token_x]
        assert [market.address for market in x_markets] == [x_uni, x_sushi]
        assert type(x_markets[0]) is UniswapV2Pair
        assert type(x_markets[1]) is SushiswapPair
        assert x_markets[1].protocol == 'Sushiswap'
        assert all_pairs == x_markets

        pair_requests = mock_geth.batch_request.call_args_list[0][0][0]
        assert len(pair_requests) == 4
        assert pair_requests[0][0] == factories['UniswapV2']
        assert pair_requests[0][1].startswith(Web3.to_hex(sig('getPair(address,address)')))

    def test_thin_weth_reserves_are_dropped(self, mock_geth, factories, token_x):
        pair_lookups = [address('a1').lower(), address('a2').lower()]
        # token_x is token0, WETH is token1
        reserves = [[10 * ETHER, 2 * ETHER, 0], [10 * ETHER, ETHER // 2, 0]]
        mock_geth.batch_request.side_effect = [pair_lookups, reserves]

        markets_by_token, all_pairs = UniswapV2(mock_geth, WETH, factories).get_markets_by_token([token_x])

        assert markets_by_token == {}
        assert all_pairs == []
