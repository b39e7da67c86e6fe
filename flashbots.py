import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

import requests
from aiohttp import ClientSession
from eth_account import Account, messages
from eth_account.signers.local import LocalAccount
from eth_typing import BlockNumber, ChecksumAddress, HexStr
from web3 import Web3
from web3.types import TxParams

from constants import FLASHBOTS_RELAY
from exceptions import RelayError

logger = logging.getLogger(__name__)

BundledTransaction = Dict[str, Union[LocalAccount, TxParams]]


@dataclass(frozen=True)
class SimulationSuccess:
    coinbase_diff: int
    total_gas_used: int

    @property
    def effective_gas_price(self) -> int:
        return self.coinbase_diff // self.total_gas_used if self.total_gas_used else 0


@dataclass(frozen=True)
class SimulationRevert:
    index: int
    message: str


@dataclass(frozen=True)
class SimulationError:
    message: str


SimulationResult = Union[SimulationSuccess, SimulationRevert, SimulationError]


def get_max_base_fee_in_future_block(base_fee: int, blocks_in_future: int) -> int:
    """ Upper bound on the base fee blocks_in_future blocks ahead, each block raising it by at most 12.5%.
    """
    max_base_fee = base_fee
    for _ in range(blocks_in_future):
        max_base_fee = max_base_fee * 1125 // 1000 + 1
    return max_base_fee


def parse_simulation(response: dict) -> SimulationResult:
    if 'error' in response:
        error = response['error']
        return SimulationError(error.get('message', str(error)) if isinstance(error, dict) else str(error))

    result = response['result']
    for index, tx_result in enumerate(result.get('results', [])):
        if 'error' in tx_result or 'revert' in tx_result:
            return SimulationRevert(index, tx_result.get('revert') or tx_result.get('error'))

    if 'coinbaseDiff' not in result or 'totalGasUsed' not in result:
        return SimulationError(f"malformed simulation result: {result}")
    return SimulationSuccess(coinbase_diff=int(result['coinbaseDiff']),
                             total_gas_used=int(result['totalGasUsed']))


class FlashbotsRelay:
    """ Signs, simulates and submits bundles to a flashbots style relay.

    Every request body is signed with the relay signing key and sent in the X-Flashbots-Signature header.
    """

    def __init__(self,
                 signing_account: LocalAccount,
                 get_nonce: Callable[[ChecksumAddress], int],
                 relay_host: str=FLASHBOTS_RELAY):
        self._signing_account = signing_account
        self._get_nonce = get_nonce
        self.relay_host = relay_host

    def _body(self, method: str, params: dict) -> str:
        return json.dumps({"jsonrpc": "2.0", "id": 1, "method": method, "params": [params]})

    def _headers(self, body: str) -> Dict[str, str]:
        message = messages.encode_defunct(text=Web3.to_hex(Web3.keccak(text=body)))
        signature = Web3.to_hex(Account.sign_message(message, self._signing_account.key).signature)
        return {"Content-Type": "application/json",
                "X-Flashbots-Signature": f"{self._signing_account.address}:{signature}"}

    def _post(self, method: str, params: dict) -> dict:
        body = self._body(method, params)
        response = requests.post(self.relay_host, data=body, headers=self._headers(body))
        response.raise_for_status()
        return response.json()

    def sign_bundle(self, bundled_transactions: List[BundledTransaction]) -> List[HexStr]:
        """ Sign each transaction with its signer, filling nonces in bundle order.
        """
        nonces = dict()
        signed_transactions = list()
        for bundled in bundled_transactions:
            signer = bundled['signer']
            transaction = dict(bundled['transaction'])
            if 'nonce' not in transaction:
                if signer.address not in nonces:
                    nonces[signer.address] = self._get_nonce(signer.address)
                transaction['nonce'] = nonces[signer.address]
                nonces[signer.address] += 1
            transaction.pop('from', None)
            signed = Account.sign_transaction(transaction, signer.key)
            signed_transactions.append(Web3.to_hex(signed.raw_transaction))

        return signed_transactions

    def simulate(self, signed_bundle: List[HexStr], target_block: BlockNumber,
                 state_block: Union[str, BlockNumber]='latest') -> SimulationResult:
        params = {"txs": signed_bundle,
                  "blockNumber": hex(target_block),
                  "stateBlockNumber": state_block if isinstance(state_block, str) else hex(state_block)}
        response = self._post("eth_callBundle", params)
        simulation = parse_simulation(response)
        logger.debug("simulation for block %s: %s", target_block, simulation)
        return simulation

    def _bundle_hash(self, response: dict, target_block: BlockNumber) -> Optional[HexStr]:
        if 'error' in response:
            raise RelayError(f"eth_sendBundle for block {target_block} failed: {response['error']}")
        return (response.get('result') or {}).get('bundleHash')

    def send_bundle(self, signed_bundle: List[HexStr], target_block: BlockNumber) -> Optional[HexStr]:
        params = {"txs": signed_bundle, "blockNumber": hex(target_block)}
        return self._bundle_hash(self._post("eth_sendBundle", params), target_block)

    async def _async_post(self, session: ClientSession, method: str, params: dict) -> dict:
        body = self._body(method, params)
        async with session.post(self.relay_host, data=body, headers=self._headers(body)) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def _send_all(self, signed_bundle: List[HexStr], target_blocks: List[BlockNumber]) -> List[dict]:
        async with ClientSession() as session:
            tasks = [self._async_post(session, "eth_sendBundle", {"txs": signed_bundle, "blockNumber": hex(target_block)})
                     for target_block in target_blocks]
            return await asyncio.gather(*tasks)

    def send_bundles(self, signed_bundle: List[HexStr], target_blocks: List[BlockNumber]) -> List[Optional[HexStr]]:
        """ Submit the same signed bundle for each target block concurrently.
        """
        logger.info("sending bundle to %s for blocks %s", self.relay_host, target_blocks)
        responses = asyncio.run(self._send_all(signed_bundle, target_blocks))
        return [self._bundle_hash(response, target_block) for response, target_block in zip(responses, target_blocks)]
