import logging
from collections import defaultdict
from typing import Dict, List, Tuple

from eth_abi import encode
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3

from constants import FACTORY_ADDRESSES, MIN_WETH_RESERVE, ZERO_ADDRESS
from dex.market import CallData, MarketsByToken, Pool
from exceptions import InsufficientLiquidity
from geth_client import GethClient, RequestParams
from utils import TokenPair, checksum, encode_pair, sig, sort_tokens

logger = logging.getLogger(__name__)


class UniswapV2Pair(Pool):

    protocol = 'UniswapV2'

    _get_reserves_sig = Web3.to_hex(sig('getReserves()'))
    _swap_sig = sig('swap(uint256,uint256,address,bytes)')
    _fee_num, _fee_den = 997, 1000

    def __init__(self, pair_address: ChecksumAddress, tokens: TokenPair, protocol: str=None):
        super().__init__(pair_address, tokens)
        self._reserves = dict()
        if protocol is not None:
            self.protocol = protocol

    def get_param_calls(self) -> RequestParams:
        out_types = ['uint112', 'uint112', 'uint32']
        return [self.address, self._get_reserves_sig, out_types, None]

    def set_params(self, reserve0: int, reserve1: int):
        token0, token1 = self._tokens
        self._reserves.update({token0: reserve0, token1: reserve1})

    def get_reserves(self, token_pair: TokenPair) -> Tuple[int, int]:
        return tuple([self.get_reserve(address) for address in token_pair])

    def get_reserve(self, token_address: ChecksumAddress) -> int:
        if token_address not in self._tokens:
            raise ValueError(f"token {token_address} not in pair {self.address}")
        return self._reserves.get(token_address, 0)

    def get_out_amount(self, in_amount: int, token_pair: TokenPair) -> int:
        if in_amount <= 0:
            return 0
        in_reserve, out_reserve = self.get_reserves(token_pair)
        in_amount_with_fee = self._fee_num * in_amount
        numerator = out_reserve * in_amount_with_fee
        denominator = self._fee_den * in_reserve + in_amount_with_fee
        if denominator == 0:
            return 0
        return numerator // denominator

    def get_in_amount(self, out_amount: int, token_pair: TokenPair) -> int:
        if out_amount <= 0:
            return 0
        in_reserve, out_reserve = self.get_reserves(token_pair)
        if out_amount >= out_reserve:
            raise InsufficientLiquidity(f"{self.address} holds {out_reserve} of {token_pair[1]}, {out_amount} requested")
        numerator = in_reserve * out_amount * self._fee_den
        denominator = (out_reserve - out_amount) * self._fee_num
        return 1 + numerator // denominator

    def receive_directly(self, token_address: ChecksumAddress) -> bool:
        return token_address in self._tokens

    def get_swap_data(self, out_amount: int, token_pair: TokenPair, recipient: ChecksumAddress) -> HexBytes:
        in_token, out_token = token_pair
        if (in_token, out_token) == self._tokens:
            args = [0, out_amount, recipient, b'']
        elif (out_token, in_token) == self._tokens:
            args = [out_amount, 0, recipient, b'']
        else:
            raise ValueError(f"malformed token tuple {token_pair} for pair {self.address}")
        return HexBytes(self._swap_sig + encode(['uint256', 'uint256', 'address', 'bytes'], args))

    def _pair_for(self, in_token: ChecksumAddress) -> TokenPair:
        token0, token1 = self._tokens
        if in_token == token0:
            return (token0, token1)
        if in_token == token1:
            return (token1, token0)
        raise ValueError(f"token {in_token} not in pair {self.address}")

    def sell_tokens(self, in_token: ChecksumAddress, in_amount: int, recipient: ChecksumAddress) -> HexBytes:
        token_pair = self._pair_for(in_token)
        out_amount = self.get_out_amount(in_amount, token_pair)
        return self.get_swap_data(out_amount, token_pair, recipient)

    def sell_tokens_to_next_market(self, in_token: ChecksumAddress, in_amount: int, next_market: Pool) -> CallData:
        out_token = self._pair_for(in_token)[1]
        if not next_market.receive_directly(out_token):
            raise ValueError(f"{next_market} cannot receive tokens directly from {self.address}")
        exchange_call = self.sell_tokens(in_token, in_amount, next_market.address)
        return CallData(targets=[self.address], data=[exchange_call])


class SushiswapPair(UniswapV2Pair):

    protocol = 'Sushiswap'


def update_reserves(geth: GethClient, pairs: List[UniswapV2Pair]):
    """ Refresh every pair's reserves with one batch of getReserves() calls.
    """
    reserves = geth.batch_request([pair.get_param_calls() for pair in pairs])
    assert len(reserves) == len(pairs)
    for reserve, pair in zip(reserves, pairs):
        pair.set_params(reserve[0], reserve[1])


class UniswapV2:
    """ Discovers WETH pairs on uniswap v2 style factories and groups them by their non WETH token.
    """

    _get_pair_sig = Web3.to_hex(sig('getPair(address,address)'))
    _pair_classes = {'UniswapV2': UniswapV2Pair, 'Sushiswap': SushiswapPair}

    def __init__(self,
                 geth: GethClient,
                 weth: ChecksumAddress,
                 factories: Dict[str, ChecksumAddress]=FACTORY_ADDRESSES,
                 min_weth_reserve: int=MIN_WETH_RESERVE):
        self._geth = geth
        self._weth = weth
        self._factories = factories
        self._min_weth_reserve = min_weth_reserve

    def _pair_class(self, protocol: str):
        return self._pair_classes.get(protocol, UniswapV2Pair)

    def get_pairs(self, tokens: List[ChecksumAddress]) -> List[UniswapV2Pair]:
        trade_set = [token for token in dict.fromkeys(tokens) if token != self._weth]
        lookups = [(protocol, factory, token) for protocol, factory in self._factories.items() for token in trade_set]
        pair_requests = [[factory, self._get_pair_sig + encode_pair((self._weth, token)), ['address'], -1]
                         for _, factory, token in lookups]
        pair_addresses = self._geth.batch_request(pair_requests)

        pairs = list()
        for (protocol, _, token), address in zip(lookups, pair_addresses):
            if int(address, 16) == int(ZERO_ADDRESS, 16):
                continue
            pair_class = self._pair_class(protocol)
            pairs.append(pair_class(checksum(address), sort_tokens(self._weth, token), protocol))

        return pairs

    def get_markets_by_token(self, tokens: List[ChecksumAddress]) -> Tuple[MarketsByToken, List[UniswapV2Pair]]:
        pairs = self.get_pairs(tokens)
        update_reserves(self._geth, pairs)

        grouped = defaultdict(list)
        for pair in pairs:
            if pair.get_reserve(self._weth) < self._min_weth_reserve:
                continue
            token = pair.tokens[0] if pair.tokens[1] == self._weth else pair.tokens[1]
            grouped[token].append(pair)

        markets_by_token = {token: markets for token, markets in grouped.items() if len(markets) > 1}
        all_market_pairs = [market for markets in markets_by_token.values() for market in markets]
        logger.info("%s pairs loaded, %s tokens traded on more than one market", len(all_market_pairs), len(markets_by_token))
        return markets_by_token, all_market_pairs
