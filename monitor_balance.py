#!/usr/bin/env python3
import argparse
import logging
import sys
from time import sleep
from typing import Optional

from eth_typing import BlockNumber, ChecksumAddress
from web3 import Web3

from constants import WETH
from geth_client import GethClient
from settings import load_config
from utils import checksum, encode_address, format_ether, sig

logger = logging.getLogger(__name__)


class BalanceMonitor:
    """ Logs whenever an address's WETH balance changes between blocks.
    """

    _balance_of_sig = Web3.to_hex(sig('balanceOf(address)'))

    def __init__(self, geth: GethClient, address: ChecksumAddress, token: ChecksumAddress=WETH):
        self._geth = geth
        self.address = address
        self._token = token
        self.previous_balance = None

    def get_balance(self) -> int:
        return self._geth.request(self._token, self._balance_of_sig + encode_address(self.address), ['uint256'])

    def check(self, block_number: BlockNumber) -> Optional[int]:
        """ Return the new balance if it changed since the previous check.
        """
        balance = self.get_balance()
        previous_balance, self.previous_balance = self.previous_balance, balance
        if previous_balance is None:
            logger.info("monitoring address balance: %s", self.address)
            return None
        if balance != previous_balance:
            logger.info("Balance changed on block %s for address %s: %s", block_number, self.address, format_ether(balance))
            return balance
        return None


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Watch the WETH balance of an address')
    parser.add_argument('address')
    parser.add_argument('-c', '--config', default='config.ini')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    config = load_config(args.config)
    geth = GethClient(config['http'], config['rpc_user'], config['rpc_secret'])
    monitor = BalanceMonitor(geth, checksum(args.address))

    last_block = None
    try:
        while True:
            block_number = geth.latest_block()
            if block_number != last_block:
                monitor.check(block_number)
                last_block = block_number
            sleep(1)
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
