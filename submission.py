import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import requests
from eth_account.signers.local import LocalAccount
from eth_typing import BlockNumber, HexStr
from web3.exceptions import Web3Exception
from web3.types import BlockData

from arbitrage import CrossedMarket
from bundle import Bundle, BundleBuilder
from constants import FALLBACK_GAS_LIMIT, MAX_GAS_ESTIMATE
from exceptions import NoArbitrageSubmitted
from flashbots import FlashbotsRelay, SimulationError, SimulationResult, SimulationRevert
from geth_client import GethClient
from utils import big_number_to_decimal, format_ether

logger = logging.getLogger(__name__)


class SubmissionState(Enum):
    ESTIMATING = 'estimating'
    SIGNING = 'signing'
    SIMULATING = 'simulating'
    SUBMITTING = 'submitting'
    SUBMITTED = 'submitted'
    NEXT_CANDIDATE = 'next_candidate'


@dataclass
class Attempt:
    """ Per candidate progress through the submission states.
    """
    bundle: Bundle
    block_number: BlockNumber
    state: SubmissionState = SubmissionState.ESTIMATING
    signed_bundle: List[HexStr] = field(default_factory=list)
    simulation: Optional[SimulationResult] = None
    bundle_hashes: List[Optional[HexStr]] = field(default_factory=list)

    @property
    def crossed_market(self) -> CrossedMarket:
        return self.bundle.crossed_market

    @property
    def target_blocks(self) -> List[BlockNumber]:
        return [self.block_number + 1, self.block_number + 2]


@dataclass(frozen=True)
class BundleSubmission:
    crossed_market: CrossedMarket
    target_blocks: List[BlockNumber]
    bundle_hashes: List[Optional[HexStr]]
    simulation: SimulationResult


class ArbitrageSubmitter:
    """ Walks ranked crossed markets through estimate, sign, simulate and submit until one is sent to the relay.

    A candidate is only ever tried once; a rejection moves on to the next ranked crossed market.
    """

    terminal_states = {SubmissionState.SUBMITTED, SubmissionState.NEXT_CANDIDATE}

    def __init__(self,
                 executor_wallet: LocalAccount,
                 relay: FlashbotsRelay,
                 geth: GethClient,
                 bundle_builder: BundleBuilder):
        self._executor_wallet = executor_wallet
        self._relay = relay
        self._geth = geth
        self._bundle_builder = bundle_builder
        self._transitions = {
            SubmissionState.ESTIMATING: self.estimate,
            SubmissionState.SIGNING: self.sign,
            SubmissionState.SIMULATING: self.simulate,
            SubmissionState.SUBMITTING: self.submit,
        }

    def estimate(self, attempt: Attempt) -> SubmissionState:
        settlement = attempt.bundle.settlement
        try:
            estimated_gas = self._geth.estimate_gas({**settlement, 'from': self._executor_wallet.address})
        except (Web3Exception, ValueError, requests.RequestException) as e:
            # degraded mode: keep the candidate with a fixed gas limit
            logger.warning("Estimate gas failure for %s on token %s (%s), using gas limit %s",
                           format_ether(attempt.crossed_market.volume), attempt.crossed_market.token_address,
                           e, FALLBACK_GAS_LIMIT)
            settlement['gas'] = FALLBACK_GAS_LIMIT
            return SubmissionState.SIGNING

        if estimated_gas > MAX_GAS_ESTIMATE:
            logger.info("EstimateGas succeeded, but suspiciously large: %s", estimated_gas)
            return SubmissionState.NEXT_CANDIDATE
        settlement['gas'] = estimated_gas * 2
        return SubmissionState.SIGNING

    def sign(self, attempt: Attempt) -> SubmissionState:
        bundled_transactions = [
            {'signer': self._executor_wallet, 'transaction': attempt.bundle.settlement},
            {'signer': self._executor_wallet, 'transaction': attempt.bundle.decoy},
        ]
        attempt.signed_bundle = self._relay.sign_bundle(bundled_transactions)
        return SubmissionState.SIMULATING

    def simulate(self, attempt: Attempt) -> SubmissionState:
        simulation = self._relay.simulate(attempt.signed_bundle, attempt.block_number + 1)
        attempt.simulation = simulation
        token = attempt.crossed_market.token_address
        if isinstance(simulation, SimulationError):
            logger.info("Simulation Error on token %s, skipping: %s", token, simulation.message)
            return SubmissionState.NEXT_CANDIDATE
        if isinstance(simulation, SimulationRevert):
            logger.info("Simulation Error (based on first revert at %s) on token %s, skipping: %s",
                        simulation.index, token, simulation.message)
            return SubmissionState.NEXT_CANDIDATE
        return SubmissionState.SUBMITTING

    def submit(self, attempt: Attempt) -> SubmissionState:
        simulation = attempt.simulation
        logger.info("Submitting bundle, profit sent to miner: %s, effective gas price: %s GWEI",
                    big_number_to_decimal(simulation.coinbase_diff),
                    big_number_to_decimal(simulation.effective_gas_price, 9))
        attempt.bundle_hashes = self._relay.send_bundles(attempt.signed_bundle, attempt.target_blocks)
        return SubmissionState.SUBMITTED

    def run(self, attempt: Attempt) -> Attempt:
        while attempt.state not in self.terminal_states:
            attempt.state = self._transitions[attempt.state](attempt)
        return attempt

    def take_crossed_markets(self,
                             best_crossed_markets: List[CrossedMarket],
                             block_number: BlockNumber,
                             miner_reward_percentage: int,
                             block: BlockData,
                             chain_id: int) -> Optional[BundleSubmission]:
        """ Submit the best ranked crossed market that survives estimation and simulation.

        Returns None without touching the chain or relay when the block has no base fee. Raises
        NoArbitrageSubmitted when every crossed market is rejected.
        """
        base_fee = block.get('baseFeePerGas')
        if base_fee is None:
            logger.warning("This chain is not EIP-1559 enabled. Stopping")
            return None

        for crossed_market in best_crossed_markets:
            logger.info("Send this much WETH %s get this much profit %s",
                        format_ether(crossed_market.volume), format_ether(crossed_market.profit))
            bundle = self._bundle_builder.build(crossed_market, miner_reward_percentage, base_fee, chain_id)
            attempt = self.run(Attempt(bundle=bundle, block_number=block_number))
            if attempt.state is SubmissionState.SUBMITTED:
                return BundleSubmission(crossed_market=crossed_market,
                                        target_blocks=attempt.target_blocks,
                                        bundle_hashes=attempt.bundle_hashes,
                                        simulation=attempt.simulation)

        raise NoArbitrageSubmitted(len(best_crossed_markets))
