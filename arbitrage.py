import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from eth_typing import ChecksumAddress

from dex.market import MarketsByToken, Pool
from exceptions import InsufficientLiquidity
from settings import ArbitrageSettings
from utils import big_number_to_decimal

logger = logging.getLogger(__name__)

# (sell_to_market, buy_from_market)
CrossedPair = Tuple[Pool, Pool]


@dataclass(frozen=True)
class CrossedMarket:
    profit: int
    volume: int
    token_address: ChecksumAddress
    sell_to_market: Pool
    buy_from_market: Pool


@dataclass(frozen=True)
class PricedMarket:
    market: Pool
    tokens_bought: int      # tokens received when buying with the probe volume of weth
    tokens_to_sell: int     # tokens that must be sold to receive the probe volume of weth


def price_market(market: Pool, token_address: ChecksumAddress, weth: ChecksumAddress, probe_volume: int) -> PricedMarket:
    return PricedMarket(market=market,
                        tokens_bought=market.get_out_amount(probe_volume, (weth, token_address)),
                        tokens_to_sell=market.get_in_amount(probe_volume, (token_address, weth)))


def find_crossed_pairs(markets: Sequence[Pool],
                       token_address: ChecksumAddress,
                       weth: ChecksumAddress,
                       probe_volume: int) -> List[CrossedPair]:
    """ Pair up markets where buying the token on one and selling it on another nets more weth than it costs.

    A pair (sell_to, buy_from) is crossed when the probe volume of weth buys strictly more tokens on buy_from
    than sell_to needs to pay the same probe volume back out.
    """
    if len(markets) < 2:
        return []

    priced_markets = list()
    for market in markets:
        try:
            priced_markets.append(price_market(market, token_address, weth, probe_volume))
        except InsufficientLiquidity as e:
            logger.debug("Skipping %s while pricing %s: %s", market, token_address, e)

    crossed_pairs = list()
    for sell_to in priced_markets:
        for buy_from in priced_markets:
            if buy_from.market is sell_to.market:
                continue
            if buy_from.tokens_bought > sell_to.tokens_to_sell:
                crossed_pairs.append((sell_to.market, buy_from.market))

    return crossed_pairs


def arbitrage_profit(sell_to_market: Pool,
                     buy_from_market: Pool,
                     token_address: ChecksumAddress,
                     weth: ChecksumAddress,
                     volume: int) -> int:
    tokens_out_from_buying = buy_from_market.get_out_amount(volume, (weth, token_address))
    proceeds_from_selling = sell_to_market.get_out_amount(tokens_out_from_buying, (token_address, weth))
    return proceeds_from_selling - volume


class VolumeSearch:
    """ Strategy for sizing the weth volume sent through a crossed pair.
    """

    def search(self, sell_to_market: Pool, buy_from_market: Pool, token_address: ChecksumAddress) -> Optional[CrossedMarket]:
        raise NotImplementedError


class LadderVolumeSearch(VolumeSearch):
    """ One-shot hill climb over an ascending ladder of trial volumes.

    Trials are evaluated in order until one is strictly less profitable than the best so far. The midpoint
    between that trial and the best volume is tried once, then the search stops. This assumes profit rises and
    then falls across the ladder; a second peak further up is never visited.
    """

    def __init__(self, weth: ChecksumAddress, test_volumes: Sequence[int]):
        self._weth = weth
        self._test_volumes = tuple(test_volumes)

    def _crossed_market(self, sell_to_market: Pool, buy_from_market: Pool, token_address: ChecksumAddress, volume: int) -> CrossedMarket:
        profit = arbitrage_profit(sell_to_market, buy_from_market, token_address, self._weth, volume)
        return CrossedMarket(profit=profit,
                             volume=volume,
                             token_address=token_address,
                             sell_to_market=sell_to_market,
                             buy_from_market=buy_from_market)

    def search(self, sell_to_market: Pool, buy_from_market: Pool, token_address: ChecksumAddress) -> Optional[CrossedMarket]:
        best = None
        for size in self._test_volumes:
            trial = self._crossed_market(sell_to_market, buy_from_market, token_address, size)
            if best is not None and trial.profit < best.profit:
                # the next size up lost value, meet halfway
                try_size = (size + best.volume) // 2
                midpoint = self._crossed_market(sell_to_market, buy_from_market, token_address, try_size)
                if midpoint.profit > best.profit:
                    best = midpoint
                break
            best = trial

        if best is None or best.profit <= 0:
            return None
        return best


class CrossedMarketEvaluator:

    def __init__(self, settings: ArbitrageSettings=None, volume_search: VolumeSearch=None):
        self.settings = ArbitrageSettings() if settings is None else settings
        if volume_search is None:
            volume_search = LadderVolumeSearch(self.settings.weth, self.settings.test_volumes)
        self._volume_search = volume_search

    def best_crossed_market(self, markets: Sequence[Pool], token_address: ChecksumAddress) -> Optional[CrossedMarket]:
        settings = self.settings
        best_crossed_market = None
        for sell_to_market, buy_from_market in find_crossed_pairs(markets, token_address, settings.weth, settings.probe_volume):
            crossed_market = self._volume_search.search(sell_to_market, buy_from_market, token_address)
            if crossed_market is None:
                continue
            if best_crossed_market is None or crossed_market.profit > best_crossed_market.profit:
                best_crossed_market = crossed_market

        return best_crossed_market

    def evaluate(self, markets_by_token: MarketsByToken) -> List[CrossedMarket]:
        """ Best crossed market per token above the minimum profit, most profitable first.
        """
        best_crossed_markets = list()
        for token_address, markets in markets_by_token.items():
            best_crossed_market = self.best_crossed_market(markets, token_address)
            if best_crossed_market is not None and best_crossed_market.profit > self.settings.min_profit:
                best_crossed_markets.append(best_crossed_market)

        best_crossed_markets.sort(key=lambda crossed_market: crossed_market.profit, reverse=True)
        return best_crossed_markets


def format_crossed_market(crossed_market: CrossedMarket) -> str:
    buy_from = crossed_market.buy_from_market
    sell_to = crossed_market.sell_to_market
    buy_tokens = buy_from.tokens
    sell_tokens = sell_to.tokens
    return (f"Profit: {big_number_to_decimal(crossed_market.profit)} Volume: {big_number_to_decimal(crossed_market.volume)}\n"
            f"{buy_from.protocol} ({buy_from.address})\n"
            f"  {buy_tokens[0]} => {buy_tokens[1]}\n"
            f"{sell_to.protocol} ({sell_to.address})\n"
            f"  {sell_tokens[0]} => {sell_tokens[1]}\n")
