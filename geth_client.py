import asyncio
import logging
from aiohttp import BasicAuth, ClientSession
from time import sleep

# typing
from web3.types import BlockData, TxParams
from typing import List, Tuple, Union, Optional
from eth_typing import ChecksumAddress, HexAddress, BlockNumber, HexStr

from web3 import Web3
from web3.providers.rpc import HTTPProvider

from eth_abi import decode
from eth_abi.exceptions import InsufficientDataBytes
from hexbytes import HexBytes


logger = logging.getLogger(__name__)

RequestParams = Tuple[HexAddress, HexStr, List[str], Optional[int]]
ContractCallReturnValue = Union[int, HexAddress, List[Union[int, HexAddress]]]


async def async_make_request(session: ClientSession, rpc_endpoint: str, method: str, params: list, _id: int) -> dict:
    request_data = {'jsonrpc': '2.0', 'method': method, 'params': params, 'id': _id}
    async with session.post(rpc_endpoint, json=request_data) as response:
        response.raise_for_status()
        return await response.json(content_type=None)


async def run_batch(rpc_endpoint: str, payload: List[dict], auth: Optional[BasicAuth]=None) -> List[dict]:
    tasks = []

    async with ClientSession(auth=auth) as session:
        for job in payload:
            task = asyncio.ensure_future(async_make_request(session, rpc_endpoint, job['method'], job['params'], job['id']))
            tasks.append(task)

        return await asyncio.gather(*tasks)


def _unpack(requested: RequestParams, value: tuple) -> ContractCallReturnValue:
    if requested[3] is not None:
        value = value[requested[3]]
    return list(value) if type(value) is tuple else value


class GethClient:
    """ Thin JSON-RPC wrapper around an execution client.
    """

    def __init__(self, rpc_url: str, user: str='', secret: str=''):
        self._rpc_url = rpc_url
        self._auth = BasicAuth(user, secret) if user else None
        request_kwargs = {'auth': (user, secret)} if user else {}
        self._provider = HTTPProvider(rpc_url, request_kwargs=request_kwargs)
        self.w3 = Web3(self._provider)

    def wait_for_sync(self):
        while self.w3.eth.syncing:
            syncing_attr = self.w3.eth.syncing
            if syncing_attr['currentBlock'] == syncing_attr['highestBlock']:
                break
            logger.info("waiting for node to sync (%s/%s)", syncing_attr['currentBlock'], syncing_attr['highestBlock'])
            sleep(1)

    def batch_request(self, requests: List[RequestParams]) -> List[ContractCallReturnValue]:
        """ Run many eth_calls concurrently and ABI decode each result with its requested output types.
        """
        if not requests:
            return []
        payload = [{'method': 'eth_call',
                    'params': [{'to': req[0], 'data': req[1]}, 'latest'], 'id': i}
                   for i, req in enumerate(requests)]
        responses = asyncio.run(run_batch(self._rpc_url, payload, self._auth))
        responses = sorted(responses, key=lambda r: r['id'])
        decoded_results = list()
        for req, res in zip(requests, responses):
            if 'error' in res:
                raise ValueError(f"eth_call to {req[0]} failed: {res['error']}")
            try:
                decoded_results.append(_unpack(req, decode(req[2], HexBytes(res['result']))))
            except InsufficientDataBytes:
                logger.error("Failed on request %s, gave result %s", req, res['result'])
                raise

        return decoded_results

    def request(self, to_address: HexAddress, data: HexStr, output_types: List[str]) -> ContractCallReturnValue:
        response = self._provider.make_request('eth_call', [{'to': to_address, 'data': data}, 'latest'])
        if 'error' in response:
            raise ValueError(f"eth_call to {to_address} failed: {response['error']}")
        value = decode(output_types, HexBytes(response['result']))
        if len(output_types) == 1:
            return list(value[0]) if type(value[0]) is tuple else value[0]
        return list(value)

    def latest_block(self) -> BlockNumber:
        return self.w3.eth.block_number

    def get_block(self, block_number: BlockNumber) -> BlockData:
        return self.w3.eth.get_block(block_number)

    def get_nonce(self, address: ChecksumAddress) -> int:
        return self.w3.eth.get_transaction_count(address)

    def estimate_gas(self, transaction: TxParams) -> int:
        return self.w3.eth.estimate_gas(transaction)
