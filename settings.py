import configparser
import os
from dataclasses import dataclass, field
from typing import List, Tuple

from eth_typing import ChecksumAddress

from constants import (
    WETH,
    GOERLI_WETH,
    PROBE_VOLUME,
    MIN_PROFIT,
    TEST_VOLUMES,
    MAINNET_CHAIN_ID,
    GOERLI_CHAIN_ID,
    FLASHBOTS_RELAY,
    FLASHBOTS_GOERLI_RELAY,
)
from exceptions import ConfigError
from utils import checksum, get_default_relay_signing_key


# environment variable -> config.ini key
ENV_OVERRIDES = {
    'ETHEREUM_RPC_URL': 'http',
    'RPC_USER': 'rpc_user',
    'RPC_SECRET': 'rpc_secret',
    'PRIVATE_KEY': 'private_key',
    'BUNDLE_EXECUTOR_ADDRESS': 'bundle_executor',
    'FLASHBOTS_RELAY_SIGNING_KEY': 'relay_signing_key',
    'MINER_REWARD_PERCENTAGE': 'miner_reward_percentage',
    'USE_TESTNET': 'use_testnet',
    'HEALTHCHECK_URL': 'healthcheck_url',
    'TOKENS': 'tokens',
    'LOG_LEVEL': 'log_level',
}

DEFAULTS = {
    'http': 'http://127.0.0.1:8545',
    'rpc_user': '',
    'rpc_secret': '',
    'private_key': '',
    'bundle_executor': '',
    'relay_signing_key': '',
    'miner_reward_percentage': '80',
    'use_testnet': 'false',
    'healthcheck_url': '',
    'tokens': '',
    'log_level': 'INFO',
}


@dataclass(frozen=True)
class ArbitrageSettings:
    """ Thresholds and trial volumes used to find and size crossed markets.
    """
    weth: ChecksumAddress = WETH
    probe_volume: int = PROBE_VOLUME
    min_profit: int = MIN_PROFIT
    test_volumes: Tuple[int, ...] = TEST_VOLUMES

    @classmethod
    def for_network(cls, testnet: bool=False) -> 'ArbitrageSettings':
        return cls(weth=GOERLI_WETH if testnet else WETH)


@dataclass
class BotSettings:
    rpc_url: str
    rpc_user: str
    rpc_secret: str
    private_key: str
    bundle_executor: ChecksumAddress
    relay_signing_key: str
    miner_reward_percentage: int
    testnet: bool
    healthcheck_url: str
    tokens: List[ChecksumAddress] = field(default_factory=list)

    @property
    def chain_id(self) -> int:
        return GOERLI_CHAIN_ID if self.testnet else MAINNET_CHAIN_ID

    @property
    def relay_url(self) -> str:
        return FLASHBOTS_GOERLI_RELAY if self.testnet else FLASHBOTS_RELAY

    @property
    def arbitrage(self) -> ArbitrageSettings:
        return ArbitrageSettings.for_network(self.testnet)


def load_config(path: str='config.ini', environ=None) -> configparser.SectionProxy:
    """ Read config.ini's DEFAULT section, then let environment variables override it.
    """
    environ = os.environ if environ is None else environ
    config = configparser.ConfigParser(defaults=DEFAULTS)
    config.read(path)
    overrides = {key: environ[env] for env, key in ENV_OVERRIDES.items() if environ.get(env)}
    config.read_dict({'DEFAULT': overrides})
    return config['DEFAULT']


def bot_settings(config: configparser.SectionProxy) -> BotSettings:
    if config['private_key'] == '':
        raise ConfigError("Must provide PRIVATE_KEY (or private_key in config.ini)")
    if config['bundle_executor'] == '':
        raise ConfigError("Must provide BUNDLE_EXECUTOR_ADDRESS (or bundle_executor in config.ini)")

    miner_reward_percentage = config.getint('miner_reward_percentage')
    if not 0 <= miner_reward_percentage <= 100:
        raise ConfigError(f"miner_reward_percentage must be within 0-100, got {miner_reward_percentage}")

    relay_signing_key = config['relay_signing_key'] or get_default_relay_signing_key()
    tokens = [checksum(token.strip()) for token in config['tokens'].split(',') if token.strip()]

    return BotSettings(rpc_url=config['http'],
                       rpc_user=config['rpc_user'],
                       rpc_secret=config['rpc_secret'],
                       private_key=config['private_key'],
                       bundle_executor=checksum(config['bundle_executor']),
                       relay_signing_key=relay_signing_key,
                       miner_reward_percentage=miner_reward_percentage,
                       testnet=config.getboolean('use_testnet'),
                       healthcheck_url=config['healthcheck_url'],
                       tokens=tokens)
