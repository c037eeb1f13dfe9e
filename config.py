"""
Mintscan Explorer API Configuration
Environment-driven configuration for the explorer API gateway
"""

import os
from typing import Dict, Any


FAIL_CLOSED = "fail-closed"
BEST_EFFORT = "best-effort"
FAILURE_POLICIES = (FAIL_CLOSED, BEST_EFFORT)


class Config:
    """Base configuration"""

    # Upstream Endpoints
    # -------------------------------------------------------------------------
    # Development fallback defaults only. Production deployments set every
    # URL explicitly through the environment.
    # -------------------------------------------------------------------------
    NODE_RPC_URL = os.getenv("NODE_RPC_URL", "http://localhost:26657")
    NODE_API_URL = os.getenv("NODE_API_URL", "http://localhost:8080/api/v1")
    ACCELERATED_NODE_URL = os.getenv(
        "ACCELERATED_NODE_URL", "http://localhost:8081/api/v1"
    )
    EXPLORER_API_URL = os.getenv("EXPLORER_API_URL", "http://localhost:8082/api/v1")
    COINGECKO_API_URL = os.getenv(
        "COINGECKO_API_URL", "https://api.coingecko.com/api/v3"
    )

    # Upstream timeouts (seconds)
    RPC_TIMEOUT = int(os.getenv("RPC_TIMEOUT", "10"))
    API_TIMEOUT = int(os.getenv("API_TIMEOUT", "30"))
    ACCELERATED_TIMEOUT = int(os.getenv("ACCELERATED_TIMEOUT", "30"))
    EXPLORER_API_TIMEOUT = int(os.getenv("EXPLORER_API_TIMEOUT", "50"))
    MARKET_TIMEOUT = int(os.getenv("MARKET_TIMEOUT", "30"))

    # Market data
    MARKET_COIN_ID = os.getenv("MARKET_COIN_ID", "binancecoin")

    # Status aggregate failure handling: fail-closed or best-effort
    STATUS_FAILURE_POLICY = os.getenv("STATUS_FAILURE_POLICY", FAIL_CLOSED)

    # Server Configuration
    EXPLORER_PORT = int(os.getenv("EXPLORER_PORT", "5000"))
    EXPLORER_HOST = os.getenv("EXPLORER_HOST", "0.0.0.0")
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    # Database Configuration
    DB_PATH = os.getenv("EXPLORER_DB_PATH", "./explorer.db")

    # CORS Configuration
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if key.isupper() and not key.startswith("_")
        }

    @classmethod
    def validate(cls) -> None:
        """Validate configuration"""
        errors = []

        for name in (
            "NODE_RPC_URL",
            "NODE_API_URL",
            "ACCELERATED_NODE_URL",
            "EXPLORER_API_URL",
            "COINGECKO_API_URL",
        ):
            if not getattr(cls, name):
                errors.append(f"{name} is required")

        for name in (
            "RPC_TIMEOUT",
            "API_TIMEOUT",
            "ACCELERATED_TIMEOUT",
            "EXPLORER_API_TIMEOUT",
            "MARKET_TIMEOUT",
        ):
            if getattr(cls, name) <= 0:
                errors.append(f"{name} must be positive")

        if cls.STATUS_FAILURE_POLICY not in FAILURE_POLICIES:
            errors.append(
                f"STATUS_FAILURE_POLICY must be one of {', '.join(FAILURE_POLICIES)}"
            )

        if cls.EXPLORER_PORT < 1 or cls.EXPLORER_PORT > 65535:
            errors.append("EXPLORER_PORT must be between 1 and 65535")

        if errors:
            raise ValueError(f"Configuration validation failed: {', '.join(errors)}")


class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    DB_PATH = ":memory:"
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    LOG_LEVEL = "WARNING"


class TestConfig(Config):
    """Test configuration"""

    __test__ = False

    DB_PATH = ":memory:"
    NODE_RPC_URL = "http://rpc.test:26657"
    NODE_API_URL = "http://api.test/api/v1"
    ACCELERATED_NODE_URL = "http://accelerated.test/api/v1"
    EXPLORER_API_URL = "http://explorer.test/api/v1"
    COINGECKO_API_URL = "http://market.test/api/v3"
    STATUS_FAILURE_POLICY = FAIL_CLOSED


# Environment-based configuration selection
ENV_CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "test": TestConfig,
}


def get_config() -> Config:
    """Get configuration based on environment"""
    env = os.getenv("EXPLORER_ENV", "development")
    config_class = ENV_CONFIGS.get(env, DevelopmentConfig)
    config_class.validate()
    return config_class


# Export current configuration
config = get_config()
