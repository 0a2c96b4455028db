"""
Configuration management for Double or Nothing.
Supports config.json with environment variable overrides.
All paths are resolved relative to the project root.
"""

import json
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr

load_dotenv()

# Project root directory (parent of 'double_or_nothing' folder)
PROJECT_ROOT = Path(__file__).parent.parent

# Public RPC fallbacks, tried after any configured endpoint
PUBLIC_RPC_ENDPOINTS = [
    "https://api.mainnet-beta.solana.com",
    "https://rpc.ankr.com/solana",
]


def get_env(key: str, default: str = None) -> Optional[str]:
    """Get environment variable with optional default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes", "on")


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


# ==================== Configuration Models ====================

class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    name: str = "Double or Nothing"


class SolanaConfig(BaseModel):
    rpc_endpoints: List[str] = Field(default_factory=list)
    commitment: str = "confirmed"
    bank_wallet_address: str = ""
    bank_private_key: Optional[SecretStr] = None
    rpc_timeout_seconds: float = 10.0
    payout_timeout_seconds: float = 25.0
    health_ttl_seconds: float = 30.0

    def candidate_endpoints(self) -> List[str]:
        """Configured endpoints followed by the public fallbacks, de-duplicated."""
        ordered = []
        for endpoint in list(self.rpc_endpoints) + PUBLIC_RPC_ENDPOINTS:
            if endpoint and endpoint not in ordered:
                ordered.append(endpoint)
        return ordered


class GameConfig(BaseModel):
    payout_multiplier: float = 2.0
    fee_percent: float = 0.0
    win_threshold: float = 0.5
    max_bet_fraction: float = 0.1  # Share of bank liquidity offered as max bet


class SettlementConfig(BaseModel):
    reject_duplicate_signatures: bool = False


class StatsConfig(BaseModel):
    display_limit: int = 20
    fetch_limit: int = 100


class RateLimitConfig(BaseModel):
    enabled: bool = True
    game_requests: str = "30/minute"  # For settlement and stats writes
    api_requests: str = "60/minute"   # For reads


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_to_file: bool = False
    formatter: str = "color"


class PathsConfig(BaseModel):
    """All paths are relative to PROJECT_ROOT."""
    config_file: str = "config.json"
    database: str = "data/stats.db"
    log_file: str = "data/app.log"

    def get_config_path(self) -> Path:
        return PROJECT_ROOT / self.config_file

    def get_db_path(self) -> Path:
        path = Path(self.database)
        return path if path.is_absolute() else PROJECT_ROOT / path

    def get_log_path(self) -> Path:
        return PROJECT_ROOT / self.log_file


class AppConfig(BaseModel):
    """Main application configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    solana: SolanaConfig = Field(default_factory=SolanaConfig)
    game: GameConfig = Field(default_factory=GameConfig)
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)


# ==================== Configuration Loading ====================

def load_config(config_path: Path = None) -> AppConfig:
    """
    Load configuration from config.json with environment variable overrides.
    Environment variables take precedence over config.json values.
    """
    if config_path is None:
        config_path = PROJECT_ROOT / "config.json"

    data = {}

    if config_path.exists():
        with open(config_path, "r") as f:
            data = json.load(f)

    if get_env("SERVER_HOST"):
        data.setdefault("server", {})["host"] = get_env("SERVER_HOST")
    if get_env("SERVER_PORT"):
        data.setdefault("server", {})["port"] = get_env_int("SERVER_PORT", 8000)
    if get_env("DEBUG"):
        data.setdefault("server", {})["debug"] = get_env_bool("DEBUG")

    # Numbered RPC endpoints come before anything listed in config.json
    env_endpoints = [
        get_env(key)
        for key in ("SOLANA_RPC_ENDPOINT", "SOLANA_RPC_ENDPOINT_2", "SOLANA_RPC_ENDPOINT_3")
        if get_env(key)
    ]
    if env_endpoints:
        solana = data.setdefault("solana", {})
        solana["rpc_endpoints"] = env_endpoints + list(solana.get("rpc_endpoints", []))

    bank_wallet = get_env("BANK_WALLET_ADDRESS") or get_env("NEXT_PUBLIC_BANK_WALLET_ADDRESS")
    if bank_wallet:
        data.setdefault("solana", {})["bank_wallet_address"] = bank_wallet
    if get_env("BANK_PRIVATE_KEY"):
        data.setdefault("solana", {})["bank_private_key"] = get_env("BANK_PRIVATE_KEY")
    if get_env("SOLANA_COMMITMENT"):
        data.setdefault("solana", {})["commitment"] = get_env("SOLANA_COMMITMENT")
    if get_env("RPC_TIMEOUT"):
        data.setdefault("solana", {})["rpc_timeout_seconds"] = get_env_float("RPC_TIMEOUT", 10.0)
    if get_env("PAYOUT_TIMEOUT"):
        data.setdefault("solana", {})["payout_timeout_seconds"] = get_env_float("PAYOUT_TIMEOUT", 25.0)

    if get_env("REJECT_DUPLICATE_SIGNATURES"):
        data.setdefault("settlement", {})["reject_duplicate_signatures"] = get_env_bool(
            "REJECT_DUPLICATE_SIGNATURES"
        )

    if get_env("DB_PATH"):
        data.setdefault("paths", {})["database"] = get_env("DB_PATH")

    if get_env("LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = get_env("LOG_LEVEL")
    if get_env("LOG_TO_FILE"):
        data.setdefault("logging", {})["log_to_file"] = get_env_bool("LOG_TO_FILE")
    if get_env("LOG_FORMATTER"):
        data.setdefault("logging", {})["formatter"] = get_env("LOG_FORMATTER")

    if get_env("RATE_LIMIT_ENABLED"):
        data.setdefault("rate_limit", {})["enabled"] = get_env_bool("RATE_LIMIT_ENABLED", True)
    if get_env("RATE_LIMIT_GAME_REQUESTS"):
        data.setdefault("rate_limit", {})["game_requests"] = get_env("RATE_LIMIT_GAME_REQUESTS")
    if get_env("RATE_LIMIT_API_REQUESTS"):
        data.setdefault("rate_limit", {})["api_requests"] = get_env("RATE_LIMIT_API_REQUESTS")

    return AppConfig(**data)


# Global config instance
settings = load_config()
