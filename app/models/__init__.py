from .token_market import TokenMarket, PLACEHOLDER_PRICE
