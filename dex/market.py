from typing import Dict, List, NamedTuple

from eth_typing import ChecksumAddress
from hexbytes import HexBytes

from utils import TokenPair


class CallData(NamedTuple):
    targets: List[ChecksumAddress]
    data: List[HexBytes]


class Pool:
    """ A two token market quoting against its current reserves.
    """

    protocol = 'Unknown'

    def __init__(self, pool_address: ChecksumAddress, tokens: TokenPair):
        self.address = pool_address
        self._tokens = tokens

    @property
    def tokens(self) -> TokenPair:
        return self._tokens

    def get_out_amount(self, in_amount: int, token_pair: TokenPair) -> int:
        """ Calculate the amount of pair[1] you get for in_amount of pair[0] on this pool.
        """
        raise NotImplementedError

    def get_in_amount(self, out_amount: int, token_pair: TokenPair) -> int:
        """ Calculate the amount of pair[0] needed to receive out_amount of pair[1] on this pool.
        """
        raise NotImplementedError

    def receive_directly(self, token_address: ChecksumAddress) -> bool:
        """ Whether a swap can be paid for by transferring token_address to this pool beforehand.
        """
        raise NotImplementedError

    def sell_tokens(self, in_token: ChecksumAddress, in_amount: int, recipient: ChecksumAddress) -> HexBytes:
        """ Calldata swapping in_amount of in_token already held by the pool, paying the output to recipient.
        """
        raise NotImplementedError

    def sell_tokens_to_next_market(self, in_token: ChecksumAddress, in_amount: int, next_market: 'Pool') -> CallData:
        """ Calls swapping in_amount of in_token with the output delivered straight to next_market.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"


MarketsByToken = Dict[ChecksumAddress, List[Pool]]
