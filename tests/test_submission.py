"""
Tests for submission.py - candidate walk through estimate, sign, simulate and submit.
"""
import pytest
import requests
from web3.exceptions import ContractLogicError

from arbitrage import CrossedMarket
from bundle import BundleBuilder
from constants import ETHER, FALLBACK_GAS_LIMIT, GWEI, WETH
from dex.market import CallData
from exceptions import NoArbitrageSubmitted, RelayError
from flashbots import SimulationError, SimulationRevert, SimulationSuccess
from submission import ArbitrageSubmitter, Attempt, SubmissionState
from conftest import LinearMarket, address

BLOCK_NUMBER = 100
BLOCK = {'number': BLOCK_NUMBER, 'baseFeePerGas': 20 * GWEI}
SUCCESS = SimulationSuccess(coinbase_diff=ETHER // 100, total_gas_used=200000)


class SwapMarket(LinearMarket):
    """Linear market that can also encode swaps."""

    def receive_directly(self, token_address):
        return True

    def sell_tokens(self, in_token, in_amount, recipient):
        return bytes.fromhex('022c0d9f')

    def sell_tokens_to_next_market(self, in_token, in_amount, next_market):
        return CallData(targets=[self.address], data=[self.sell_tokens(in_token, in_amount, next_market.address)])


@pytest.fixture
def candidates(token_x, token_y):
    first = CrossedMarket(profit=ETHER // 10, volume=ETHER, token_address=token_x,
                          sell_to_market=SwapMarket(address('c2'), token_x, bonus=ETHER // 10),
                          buy_from_market=SwapMarket(address('c1'), token_x))
    second = CrossedMarket(profit=ETHER // 20, volume=ETHER, token_address=token_y,
                           sell_to_market=SwapMarket(address('d2'), token_y, bonus=ETHER // 20),
                           buy_from_market=SwapMarket(address('d1'), token_y))
    return [first, second]


@pytest.fixture
def submitter(executor_wallet, mock_relay, mock_geth, executor_address):
    mock_geth.estimate_gas.return_value = 150000
    mock_relay.sign_bundle.return_value = ['0xaa', '0xbb']
    mock_relay.simulate.return_value = SUCCESS
    mock_relay.send_bundles.return_value = ['0x01', '0x02']
    builder = BundleBuilder(executor_address, executor_wallet.address, WETH)
    return ArbitrageSubmitter(executor_wallet, mock_relay, mock_geth, builder)


def test_submits_best_candidate(submitter, candidates, mock_relay, mock_geth, executor_wallet):
    submission = submitter.take_crossed_markets(candidates, BLOCK_NUMBER, 80, BLOCK, 1)

    assert submission.crossed_market is candidates[0]
    assert submission.target_blocks == [BLOCK_NUMBER + 1, BLOCK_NUMBER + 2]
    assert submission.bundle_hashes == ['0x01', '0x02']
    assert submission.simulation == SUCCESS

    estimated = mock_geth.estimate_gas.call_args[0][0]
    assert estimated['from'] == executor_wallet.address
    bundled = mock_relay.sign_bundle.call_args[0][0]
    assert [tx['signer'] for tx in bundled] == [executor_wallet, executor_wallet]
    assert bundled[0]['transaction']['gas'] == 300000
    assert bundled[1]['transaction']['to'] == executor_wallet.address
    mock_relay.simulate.assert_called_once_with(['0xaa', '0xbb'], BLOCK_NUMBER + 1)
    mock_relay.send_bundles.assert_called_once_with(['0xaa', '0xbb'], [BLOCK_NUMBER + 1, BLOCK_NUMBER + 2])


def test_simulation_error_moves_to_next_candidate(submitter, candidates, mock_relay):
    mock_relay.simulate.side_effect = [SimulationError('insufficient funds'), SUCCESS]

    submission = submitter.take_crossed_markets(candidates, BLOCK_NUMBER, 80, BLOCK, 1)

    assert submission.crossed_market is candidates[1]
    assert mock_relay.simulate.call_count == 2
    mock_relay.send_bundles.assert_called_once()


def test_all_reverts_raise(submitter, candidates, mock_relay):
    mock_relay.simulate.return_value = SimulationRevert(0, 'UniswapV2: K')

    with pytest.raises(NoArbitrageSubmitted) as excinfo:
        submitter.take_crossed_markets(candidates, BLOCK_NUMBER, 80, BLOCK, 1)

    assert excinfo.value.attempted == 2
    mock_relay.send_bundles.assert_not_called()


def test_suspicious_gas_estimate_rejects_candidate(submitter, candidates, mock_geth, mock_relay):
    mock_geth.estimate_gas.side_effect = [2000000, 100000]

    submission = submitter.take_crossed_markets(candidates, BLOCK_NUMBER, 80, BLOCK, 1)

    assert submission.crossed_market is candidates[1]
    # the rejected candidate is never signed
    assert mock_relay.sign_bundle.call_count == 1
    assert mock_relay.sign_bundle.call_args[0][0][0]['transaction']['gas'] == 200000


def test_estimate_failure_falls_back_to_fixed_gas(submitter, candidates, mock_geth, mock_relay):
    mock_geth.estimate_gas.side_effect = ContractLogicError('execution reverted')

    submission = submitter.take_crossed_markets(candidates, BLOCK_NUMBER, 80, BLOCK, 1)

    assert submission.crossed_market is candidates[0]
    assert mock_relay.sign_bundle.call_args[0][0][0]['transaction']['gas'] == FALLBACK_GAS_LIMIT


def test_unreachable_node_falls_back_to_fixed_gas(submitter, candidates, mock_geth, mock_relay):
    mock_geth.estimate_gas.side_effect = requests.ConnectionError('node unreachable')

    submission = submitter.take_crossed_markets(candidates, BLOCK_NUMBER, 80, BLOCK, 1)

    assert submission.crossed_market is candidates[0]
    assert mock_relay.sign_bundle.call_args[0][0][0]['transaction']['gas'] == FALLBACK_GAS_LIMIT


def test_missing_base_fee_stops_before_any_call(submitter, candidates, mock_geth, mock_relay):
    block = {'number': BLOCK_NUMBER}

    assert submitter.take_crossed_markets(candidates, BLOCK_NUMBER, 80, block, 1) is None
    mock_geth.estimate_gas.assert_not_called()
    mock_relay.sign_bundle.assert_not_called()
    mock_relay.simulate.assert_not_called()
    mock_relay.send_bundles.assert_not_called()


def test_empty_candidate_list(submitter):
    with pytest.raises(NoArbitrageSubmitted):
        submitter.take_crossed_markets([], BLOCK_NUMBER, 80, BLOCK, 1)


def test_relay_error_propagates(submitter, candidates, mock_relay):
    mock_relay.send_bundles.side_effect = RelayError('bundle rejected')

    with pytest.raises(RelayError):
        submitter.take_crossed_markets(candidates, BLOCK_NUMBER, 80, BLOCK, 1)


def test_run_walks_states(submitter, candidates, executor_address, executor_wallet):
    bundle = BundleBuilder(executor_address, executor_wallet.address, WETH).build(candidates[0], 50, 10 * GWEI, 1)

    attempt = submitter.run(Attempt(bundle=bundle, block_number=BLOCK_NUMBER))

    assert attempt.state is SubmissionState.SUBMITTED
    assert attempt.signed_bundle == ['0xaa', '0xbb']
    assert attempt.bundle_hashes == ['0x01', '0x02']
    assert attempt.target_blocks == [BLOCK_NUMBER + 1, BLOCK_NUMBER + 2]
