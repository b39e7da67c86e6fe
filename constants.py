from web3 import Web3


ETHER = 10**18
GWEI = 10**9

WETH = Web3.to_checksum_address('0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2')
GOERLI_WETH = Web3.to_checksum_address('0xb4fbf271143f4fbf7b91a5ded31805e42b2208d6')
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'

UNISWAPV2_FACTORY = Web3.to_checksum_address('0x5c69bee701ef814a2b6a3edd4b1652cb9cc5aa6f')
SUSHISWAP_FACTORY = Web3.to_checksum_address('0xc0aee478e3658e2610c5f7a4a2e1777ce9e4f2ac')
FACTORY_ADDRESSES = {
    'UniswapV2': UNISWAPV2_FACTORY,
    'Sushiswap': SUSHISWAP_FACTORY,
}

MAINNET_CHAIN_ID = 1
GOERLI_CHAIN_ID = 5
FLASHBOTS_RELAY = 'https://relay.flashbots.net'
FLASHBOTS_GOERLI_RELAY = 'https://relay-goerli.flashbots.net'

# crossed market search
PROBE_VOLUME = ETHER // 100
MIN_PROFIT = ETHER // 1000
TEST_VOLUMES = (
    ETHER // 100,
    ETHER // 10,
    ETHER // 6,
    ETHER // 4,
    ETHER // 2,
    ETHER,
    ETHER * 2,
    ETHER * 5,
    ETHER * 10,
)
MIN_WETH_RESERVE = ETHER

# bundle fees and gas
PRIORITY_FEE = 3 * GWEI
BLOCKS_IN_THE_FUTURE = 2
SETTLEMENT_GAS_LIMIT = 60000
DECOY_GAS_LIMIT = 21000
FALLBACK_GAS_LIMIT = 80000
MAX_GAS_ESTIMATE = 1400000
