import json
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional


BINANCE_PAIRS = {
    'BTC': 'BTCUSDT', 'ETH': 'ETHUSDT', 'BNB': 'BNBUSDT', 'ADA': 'ADAUSDT',
    'XRP': 'XRPUSDT', 'SOL': 'SOLUSDT', 'SUI': 'SUIUSDT', 'DOGE': 'DOGEUSDT',
    'MATIC': 'MATICUSDT', 'LINK': 'LINKUSDT', 'UNI': 'UNIUSDT',
    'LTC': 'LTCUSDT', 'ATOM': 'ATOMUSDT', 'AAVE': 'AAVEUSDT', 'CRV': 'CRVUSDT',
}

COINGECKO_IDS = {
    'BTC': 'bitcoin',
    'ETH': 'ethereum',
    'SOL': 'solana',
    'ADA': 'cardano',
    'DOT': 'polkadot',
    'LINK': 'chainlink',
    'UNI': 'uniswap',
    'AAVE': 'aave',
    'MATIC': 'matic-network',
    'BNB': 'binancecoin',
    'XRP': 'ripple',
    'LTC': 'litecoin',
    'BCH': 'bitcoin-cash',
    'XLM': 'stellar',
    'XMR': 'monero',
    'DASH': 'dash',
    'ZEC': 'zcash',
    'XTZ': 'tezos',
    'ATOM': 'cosmos',
    'FIL': 'filecoin',
    'AVAX': 'avalanche-2',
    'NEAR': 'near',
    'ALGO': 'algorand',
    'VET': 'vechain',
    'ICP': 'internet-computer',
    'FTM': 'fantom',
    'THETA': 'theta-token',
    'EOS': 'eos',
    'TRX': 'tron',
    'IOTA': 'iota',
    'NEO': 'neo',
}


class SymbolMapper:
    """Immutable token <-> external identifier table.

    ``None`` from either lookup means the token is unsupported by the provider,
    never a transient condition.
    """

    def __init__(self, mapping: Mapping[str, str], case_sensitive_external: bool = False):
        forward: Dict[str, str] = {}
        reverse: Dict[str, str] = {}
        self._case_sensitive_external = case_sensitive_external
        for token, external in mapping.items():
            token = token.strip().upper()
            external_key = self._external_key(external.strip())
            if external_key in reverse and reverse[external_key] != token:
                raise ValueError(f"External id {external} mapped by both {reverse[external_key]} and {token}")
            forward[token] = external.strip()
            reverse[external_key] = token
        self._forward = MappingProxyType(forward)
        self._reverse = MappingProxyType(reverse)

    @classmethod
    def binance(cls) -> 'SymbolMapper':
        return cls(BINANCE_PAIRS)

    @classmethod
    def coingecko(cls) -> 'SymbolMapper':
        return cls(COINGECKO_IDS, case_sensitive_external=True)

    @classmethod
    def from_json_file(cls, path: str) -> 'SymbolMapper':
        with open(path, 'r', encoding='utf-8') as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object of token -> pair")
        return cls(data)

    def _external_key(self, external: str) -> str:
        return external if self._case_sensitive_external else external.upper()

    def to_external(self, token: str) -> Optional[str]:
        if not token:
            return None
        return self._forward.get(token.strip().upper())

    def to_token(self, external: str) -> Optional[str]:
        if not external:
            return None
        return self._reverse.get(self._external_key(external.strip()))

    def tokens(self) -> List[str]:
        return list(self._forward.keys())

    def external_ids(self) -> List[str]:
        return list(dict.fromkeys(self._forward.values()))

    def as_mapping(self) -> Mapping[str, str]:
        return self._forward

    def __contains__(self, token: str) -> bool:
        return self.to_external(token) is not None

    def __len__(self) -> int:
        return len(self._forward)
