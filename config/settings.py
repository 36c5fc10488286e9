import os
from dotenv import load_dotenv

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'")


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # RPC / WALLET
    # ═══════════════════════════════════════════════════════════════════
    RPC_URL = os.getenv("RPC_URL", "https://api.mainnet-beta.solana.com")
    COMMITMENT = os.getenv("COMMITMENT", "confirmed")

    # base58 keypair, same variable the wallet tooling uses
    SOLANA_PRIVATE_KEY = os.getenv("SOLANA_PRIVATE_KEY", "")

    # Operator's open-orders account. Discovered on-chain when empty.
    OPEN_ORDERS_ACCOUNT = os.getenv("OPEN_ORDERS_ACCOUNT", "")

    # ═══════════════════════════════════════════════════════════════════
    # MARKET
    # ═══════════════════════════════════════════════════════════════════
    MARKET_ID = os.getenv("MARKET_ID", "8BnEgHoWFysVcuFFX7QztDmzuH8r5ZFvyP3sYwn1XTh6")

    OPENBOOK_V1_PROGRAM_ID = "srmqPvymJeFKQ4zGQed1GFppgkRHL9kaELCbyksJtPX"
    SERUM_V3_PROGRAM_ID = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
    PROGRAM_ID = os.getenv("PROGRAM_ID", OPENBOOK_V1_PROGRAM_ID)

    # ═══════════════════════════════════════════════════════════════════
    # EXECUTION
    # ═══════════════════════════════════════════════════════════════════
    # Wait before fetching a landed tx so the crank has time to run
    CRANK_DELAY_SEC = _env_float("CRANK_DELAY_SEC", 50.0)

    # Executed cancel: global cap, then per-transaction chunk size
    MAX_CANCEL_ORDERS = _env_int("MAX_CANCEL_ORDERS", 5)
    MAX_CANCEL_ORDERS_PER_TX = _env_int("MAX_CANCEL_ORDERS_PER_TX", 5)

    FIND_OPEN_ORDERS_LIMIT = _env_int("FIND_OPEN_ORDERS_LIMIT", 1000)

    # NewOrderV3 match limit
    ORDER_MATCH_LIMIT = 65535
