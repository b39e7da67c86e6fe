#!/usr/bin/env python3
import argparse
import logging
import sys
import threading
from time import sleep
from typing import List, Optional

import requests
from eth_account import Account
from eth_typing import BlockNumber

from arbitrage import CrossedMarketEvaluator, format_crossed_market
from bundle import BundleBuilder
from dex.market import MarketsByToken
from dex.uniswapv2 import UniswapV2, UniswapV2Pair, update_reserves
from exceptions import ConfigError, NoArbitrageSubmitted
from flashbots import FlashbotsRelay
from geth_client import GethClient
from settings import BotSettings, bot_settings, load_config
from submission import ArbitrageSubmitter, BundleSubmission

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1


def setup_logging(level: str='INFO'):
    logging.basicConfig(level=level,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                        handlers=[logging.StreamHandler(sys.stdout)])


def healthcheck(url: str):
    if url == '':
        return
    try:
        requests.get(url, timeout=10)
    except requests.RequestException as e:
        logger.error("healthcheck to %s failed: %s", url, e)


class BlockProcessor:
    """ Runs one refresh, evaluate and submit pass per block, dropping blocks that arrive mid pass.
    """

    def __init__(self,
                 geth: GethClient,
                 evaluator: CrossedMarketEvaluator,
                 submitter: ArbitrageSubmitter,
                 markets_by_token: MarketsByToken,
                 all_market_pairs: List[UniswapV2Pair],
                 miner_reward_percentage: int,
                 chain_id: int,
                 healthcheck_url: str=''):
        self.geth = geth
        self._evaluator = evaluator
        self._submitter = submitter
        self._markets_by_token = markets_by_token
        self._all_market_pairs = all_market_pairs
        self._miner_reward_percentage = miner_reward_percentage
        self._chain_id = chain_id
        self._healthcheck_url = healthcheck_url
        self._in_flight = threading.Lock()

    def on_block(self, block_number: BlockNumber) -> Optional[BundleSubmission]:
        if not self._in_flight.acquire(blocking=False):
            logger.info("block %s dropped, previous block still being processed", block_number)
            return None
        try:
            return self._process(block_number)
        finally:
            self._in_flight.release()

    def _process(self, block_number: BlockNumber) -> Optional[BundleSubmission]:
        logger.info("blockNumber: %s", block_number)
        block = self.geth.get_block(block_number)
        update_reserves(self.geth, self._all_market_pairs)
        best_crossed_markets = self._evaluator.evaluate(self._markets_by_token)
        if len(best_crossed_markets) == 0:
            logger.info("No crossed markets")
            return None
        for crossed_market in best_crossed_markets:
            logger.info(format_crossed_market(crossed_market))

        try:
            submission = self._submitter.take_crossed_markets(best_crossed_markets,
                                                             block_number,
                                                             self._miner_reward_percentage,
                                                             block,
                                                             self._chain_id)
        except NoArbitrageSubmitted as e:
            logger.warning(str(e))
            return None
        if submission is not None:
            healthcheck(self._healthcheck_url)
        return submission


def watch_blocks(geth: GethClient, processor: BlockProcessor):
    """ Poll for new blocks and hand each one to the processor on its own thread.
    """
    last_block = geth.latest_block()
    while True:
        current_block = geth.latest_block()
        if current_block == last_block:
            sleep(POLL_INTERVAL)
            continue
        last_block = current_block
        threading.Thread(target=_run_block, args=(processor, current_block), daemon=True).start()


def _run_block(processor: BlockProcessor, block_number: BlockNumber):
    try:
        processor.on_block(block_number)
    except Exception:
        logger.exception("block %s failed", block_number)


def build_processor(settings: BotSettings) -> BlockProcessor:
    geth = GethClient(settings.rpc_url, settings.rpc_user, settings.rpc_secret)
    arbitrage_signing_wallet = Account.from_key(settings.private_key)
    relay_signing_wallet = Account.from_key(settings.relay_signing_key)
    logger.info("Searcher Wallet Address: %s", arbitrage_signing_wallet.address)
    logger.info("Flashbots Relay Signing Wallet Address: %s", relay_signing_wallet.address)

    relay = FlashbotsRelay(relay_signing_wallet, geth.get_nonce, settings.relay_url)
    arbitrage_settings = settings.arbitrage
    evaluator = CrossedMarketEvaluator(arbitrage_settings)
    builder = BundleBuilder(settings.bundle_executor, arbitrage_signing_wallet.address, arbitrage_settings.weth)
    submitter = ArbitrageSubmitter(arbitrage_signing_wallet, relay, geth, builder)

    geth.wait_for_sync()
    markets_by_token, all_market_pairs = UniswapV2(geth, arbitrage_settings.weth).get_markets_by_token(settings.tokens)
    return BlockProcessor(geth, evaluator, submitter, markets_by_token, all_market_pairs,
                          settings.miner_reward_percentage, settings.chain_id, settings.healthcheck_url)


def main(argv: List[str]=None) -> int:
    parser = argparse.ArgumentParser(description='Two market WETH arbitrage searcher')
    parser.add_argument('-c', '--config', default='config.ini', help='path to config.ini')
    parser.add_argument('--testnet', action='store_true', help='use goerli and its relay')
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.testnet:
        config['use_testnet'] = 'true'
    setup_logging(config['log_level'].upper())
    try:
        settings = bot_settings(config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    processor = build_processor(settings)
    try:
        watch_blocks(processor.geth, processor)
    except KeyboardInterrupt:
        logger.info("stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
