class ArbitrageError(Exception):
    """ Base class for errors raised by the searcher.
    """


class ConfigError(ArbitrageError):
    pass


class InsufficientLiquidity(ArbitrageError, ValueError):
    """ A market cannot produce the requested output amount with its current reserves.
    """


class UnsupportedFeeMarket(ArbitrageError):
    """ The block carries no base fee, so EIP-1559 fees cannot be priced.
    """


class RelayError(ArbitrageError):
    """ The relay answered a bundle submission with a JSON-RPC error.
    """


class NoArbitrageSubmitted(ArbitrageError):
    """ Every ranked crossed market was rejected during estimation or simulation.
    """

    def __init__(self, attempted: int):
        super().__init__(f"No arbitrage submitted to relay ({attempted} candidates tried)")
        self.attempted = attempted
