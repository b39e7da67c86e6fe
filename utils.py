import logging
import sys
from typing import Tuple
from web3 import Web3
from eth_abi import encode
from eth_account import Account
from hexbytes import HexBytes

from eth_typing import HexAddress, ChecksumAddress, HexStr

from constants import ETHER

TokenPair = Tuple[ChecksumAddress, ChecksumAddress]

logger = logging.getLogger(__name__)


def sig(signature: str) -> HexBytes:
    return Web3.keccak(text=signature)[:4]


def checksum(token: HexAddress) -> ChecksumAddress:
    return Web3.to_checksum_address(token)


def encode_pair(pair: TokenPair) -> HexStr:
    return encode(['address', 'address'], pair).hex()


def encode_address(address: HexAddress) -> HexStr:
    return encode(['address'], [address]).hex()


def sort_tokens(token_a: ChecksumAddress, token_b: ChecksumAddress) -> TokenPair:
    """ Order a pair the way uniswap v2 factories do (token0 < token1).
    """
    return (token_a, token_b) if int(token_a, 16) < int(token_b, 16) else (token_b, token_a)


def big_number_to_decimal(value: int, base: int=18) -> float:
    """ Truncate a wei-style integer to a float with 4 decimal places.
    """
    truncated = abs(value) * 10000 // 10 ** base
    return (truncated if value >= 0 else -truncated) / 10000


def format_ether(value: int) -> str:
    return f"{big_number_to_decimal(value, 18)} ETH"


def create_random_private_key() -> HexStr:
    random_private_key = Web3.to_hex(Account.create().key)
    logger.warning("Random private key generated: %s", random_private_key)
    return random_private_key


def get_default_relay_signing_key() -> HexStr:
    logger.warning("No FLASHBOTS_RELAY_SIGNING_KEY specified, creating a random signing key. "
                   "This searcher will not build a reputation with the relay across runs")
    return create_random_private_key()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == 'genpk':
        logging.basicConfig(level=logging.INFO)
        create_random_private_key()
    else:
        print(f"usage: {sys.argv[0]} genpk  (1 ETH = {ETHER} wei)")
