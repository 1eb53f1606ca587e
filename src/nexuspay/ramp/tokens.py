"""
Per-chain token configuration and chain resolution for ramp transactions.
"""

from dataclasses import dataclass
from types import MappingProxyType

from loguru import logger

from nexuspay.core.exceptions import UnsupportedTokenError, create_unsupported_token_error


@dataclass(frozen=True)
class TokenConfig:
    symbol: str
    decimals: int
    address: str
    name: str


def _tokens(*configs: TokenConfig) -> MappingProxyType:
    return MappingProxyType({config.symbol: config for config in configs})


USDC_NAME = "USD Coin"
USDT_NAME = "Tether USD"
DAI_NAME = "Dai Stablecoin"
WBTC_NAME = "Wrapped Bitcoin"
WETH_NAME = "Wrapped Ether"

TOKEN_CONFIGS: MappingProxyType = MappingProxyType({
    "arbitrum": _tokens(
        TokenConfig("USDC", 6, "0xaf88d065e77c8cC2239327C5EDb3A432268e5831", USDC_NAME),
        TokenConfig("USDT", 6, "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", USDT_NAME),
        TokenConfig("DAI", 18, "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1", DAI_NAME),
        TokenConfig("WBTC", 8, "0x2f2a2543B76A4166549F7aaB2e75Bef0aefC5B0f", WBTC_NAME),
        TokenConfig("WETH", 18, "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1", WETH_NAME),
        TokenConfig("ARB", 18, "0x912CE59144191C1204E64559FE8253a0e49E6548", "Arbitrum"),
    ),
    "optimism": _tokens(
        TokenConfig("USDC", 6, "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85", USDC_NAME),
        TokenConfig("USDT", 6, "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58", USDT_NAME),
        TokenConfig("DAI", 18, "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1", DAI_NAME),
        TokenConfig("WBTC", 8, "0x68f180fcCe6836688e9084f035309E29Bf0A2095", WBTC_NAME),
        TokenConfig("WETH", 18, "0x4200000000000000000000000000000000000006", WETH_NAME),
        TokenConfig("OP", 18, "0x4200000000000000000000000000000000000042", "Optimism"),
    ),
    "polygon": _tokens(
        TokenConfig("USDC", 6, "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", USDC_NAME),
        TokenConfig("USDT", 6, "0xc2132D05D31c914a87C6611C10748AEb04B58e8F", USDT_NAME),
        TokenConfig("DAI", 18, "0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063", DAI_NAME),
        TokenConfig("WBTC", 8, "0x1BFD67037B42Cf73acF2047067bd4F2C47D9BfD6", WBTC_NAME),
        TokenConfig("WETH", 18, "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619", WETH_NAME),
        TokenConfig("MATIC", 18, "0x0000000000000000000000000000000000001010", "Polygon"),
    ),
    "base": _tokens(
        TokenConfig("USDC", 6, "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", USDC_NAME),
        TokenConfig("WETH", 18, "0x4200000000000000000000000000000000000006", WETH_NAME),
    ),
    "bnb": _tokens(
        TokenConfig("USDC", 18, "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d", USDC_NAME),
        TokenConfig("USDT", 18, "0x55d398326f99059fF775485246999027B3197955", USDT_NAME),
        TokenConfig("DAI", 18, "0x1AF3F329e8BE154074D8769D1FFa4eE058B1DBc3", DAI_NAME),
        TokenConfig("WBTC", 18, "0x7130d2A12B9BCbFAe4f2634d864A1Ee1Ce3Ead9c", WBTC_NAME),
        TokenConfig("WETH", 18, "0x2170Ed0880ac9A755fd29B2688956BD959F933F8", WETH_NAME),
        TokenConfig("BNB", 18, "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c", "Binance Coin"),
    ),
    "avalanche": _tokens(
        TokenConfig("USDC", 6, "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E", USDC_NAME),
        TokenConfig("USDT", 6, "0x9702230A8Ea53601f5cD2dc00fDBc13d4dF4A8c7", USDT_NAME),
        TokenConfig("DAI", 18, "0xd586E7F844cEa2F87f50152665BCbc2C279D8d70", DAI_NAME),
        TokenConfig("WBTC", 8, "0x50b7545627a5162F82A992c33b87aDc75187B218", WBTC_NAME),
        TokenConfig("WETH", 18, "0x49D5c2BdFfac6CE2BFdB6640F4F80f226bc10bAB", WETH_NAME),
    ),
    "celo": _tokens(
        TokenConfig("USDC", 6, "0x48065fbBE25f71C9282ddf5e1cD6D6A887483D5e", USDC_NAME),
        TokenConfig("USDT", 6, "0x617f3112bf5397D0467D315cC709EF968D9ba546", USDT_NAME),
    ),
    "scroll": _tokens(TokenConfig("USDC", 6, "0x06eFdBFf2a14a7c8E15944D1F4A48F9F95F663A4", USDC_NAME)),
    "gnosis": _tokens(TokenConfig("USDC", 6, "0xDDAfbb505ad214D7b80b1f830fcCc89B60fb7A83", USDC_NAME)),
    "fantom": _tokens(TokenConfig("USDC", 6, "0x04068DA6C83AFCFA0e13ba15A6696662335D5B75", USDC_NAME)),
    "moonbeam": _tokens(TokenConfig("USDC", 6, "0x818ec0A7Fe18Ff94269904fCED6AE3DaE6d6dC0b", USDC_NAME)),
    "lisk": _tokens(TokenConfig("USDC", 6, "0x4e05F8C19EaA61520a94850dC41EAc3c39927696", USDC_NAME)),
    "fuse": _tokens(TokenConfig("USDC", 6, "0x620fd5fa44BE6af63715Ef4E65DDFA0387aD13F5", USDC_NAME)),
    "aurora": _tokens(TokenConfig("USDC", 6, "0xB12BFcA5A55806AaF64E99521918A4bf0fC40802", USDC_NAME)),
})

DEFAULT_CHAIN = "arbitrum"

# Searched in order when the requested chain does not list the token.
CHAIN_FALLBACK_ORDER = ("arbitrum", "polygon", "base", "optimism", "celo", "avalanche", "bnb")


def get_token_config(chain: str, symbol: str) -> TokenConfig | None:
    return TOKEN_CONFIGS.get(chain, {}).get(symbol.upper())


def get_supported_tokens(chain: str) -> list[str]:
    return list(TOKEN_CONFIGS.get(chain, {}))


def _require_token(chain: str, symbol: str) -> TokenConfig:
    config = get_token_config(chain, symbol)
    if config is None:
        raise UnsupportedTokenError(
            message=f"Token {symbol} not supported on chain {chain}",
            error_code="UNSUPPORTED_TOKEN",
            details={"token": symbol, "chain": chain},
        )
    return config


def get_token_address(chain: str, symbol: str) -> str:
    return _require_token(chain, symbol).address


def get_token_decimals(chain: str, symbol: str) -> int:
    return _require_token(chain, symbol).decimals


def resolve_chain(symbol: str, requested: str | None = None) -> str:
    """
    Pick the chain a ramp transaction settles on.

    Args:
        symbol: Token symbol, e.g. ``USDC``
        requested: Chain asked for by the caller (defaults to arbitrum)

    Returns:
        ``requested`` when it lists the token, else the first chain in
        ``CHAIN_FALLBACK_ORDER`` that does

    Raises:
        UnsupportedTokenError: If no configured chain lists the token
    """
    chain = (requested or DEFAULT_CHAIN).lower()
    if get_token_config(chain, symbol):
        return chain

    for candidate in CHAIN_FALLBACK_ORDER:
        if get_token_config(candidate, symbol):
            logger.warning(f"Token {symbol} not found on {chain}, using {candidate} instead")
            return candidate

    raise create_unsupported_token_error(symbol, [chain, *CHAIN_FALLBACK_ORDER])
