"""Configuration constants for deploy-orchestrator."""

# BIP-44 Ethereum path; mnemonic accounts are derived at {path}/{index}
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0"

# Named account bindings used when the config file declares none
DEFAULT_NAMED_ACCOUNTS = {
    "deployer": 0,
}

# Compiler profiles used when the config file declares none
DEFAULT_COMPILERS = [
    {"version": "0.6.12", "optimizer": {"enabled": True, "runs": 200}},
    {"version": "0.5.5", "optimizer": {"enabled": True, "runs": 200}},
    {"version": "0.8.7", "optimizer": {"enabled": True, "runs": 200}},
]

DEFAULT_CONFIG_FILE = "deploy.config.json"
DEFAULT_UNITS_FILE = "deploy.units.json"
DEFAULT_ARTIFACTS_DIR = "artifacts"

# Gas auto mode: attempts before GasEstimationFailed
GAS_PRICE_ATTEMPTS = 2

# Verification retries for transient HTTP failures
VERIFY_MAX_RETRIES = 3
VERIFY_BACKOFF_SECONDS = 2.0
VERIFY_STATUS_POLLS = 10
VERIFY_POLL_INTERVAL_SECONDS = 5.0
VERIFY_HTTP_TIMEOUT = 30

# Etherscan-compatible API answers
ALREADY_VERIFIED_MARKERS = ("already verified",)
PENDING_MARKERS = ("pending in queue", "in progress")
VERIFIED_MARKERS = ("pass - verified",)

# Explorer endpoints for well-known networks, keyed by chain ID.
# The API key itself is always read from the named environment variable.
KNOWN_EXPLORERS = {
    1: {
        "api_url": "https://api.etherscan.io/api",
        "browser_url": "https://etherscan.io",
        "api_key_env": "ETHERSCAN_API_KEY",
    },
    11155111: {
        "api_url": "https://api-sepolia.etherscan.io/api",
        "browser_url": "https://sepolia.etherscan.io",
        "api_key_env": "ETHERSCAN_API_KEY",
    },
    97: {
        "api_url": "https://api-testnet.bscscan.com/api",
        "browser_url": "https://testnet.bscscan.com",
        "api_key_env": "BSCSCAN_API_KEY",
    },
    42220: {
        "api_url": "https://api.celoscan.io/api",
        "browser_url": "https://celoscan.io",
        "api_key_env": "CELOSCAN_API_KEY",
    },
    44787: {
        "api_url": "https://api-alfajores.celoscan.io/api",
        "browser_url": "https://alfajores.celoscan.io",
        "api_key_env": "CELOSCAN_API_KEY",
    },
}
