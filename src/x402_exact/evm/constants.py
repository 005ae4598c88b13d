"""EVM constants - RPC endpoints, ABIs, EIP-712 types."""

# Transaction status
TX_STATUS_SUCCESS = 1
TX_STATUS_FAILED = 0

# Seconds before now the client backdates validAfter for clock skew
DEFAULT_VALIDITY_BUFFER = 60

DEFAULT_GAS_LIMIT = 200000

DEFAULT_RPC_URLS = {
    "base-sepolia": "https://sepolia.base.org",
    "base": "https://mainnet.base.org",
    "avalanche-fuji": "https://api.avax-test.network/ext/bc/C/rpc",
    "avalanche": "https://api.avax.network/ext/bc/C/rpc",
    "iotex": "https://babel-api.mainnet.iotex.io",
    "sei": "https://evm-rpc.sei-apis.com",
    "sei-testnet": "https://evm-rpc-testnet.sei-apis.com",
    "polygon": "https://polygon-rpc.com",
    "polygon-amoy": "https://rpc-amoy.polygon.technology",
    "peaq": "https://peaq.api.onfinality.io/public",
}

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

TRANSFER_WITH_AUTHORIZATION_TYPE = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "validAfter", "type": "uint256"},
    {"name": "validBefore", "type": "uint256"},
    {"name": "nonce", "type": "bytes32"},
]

ERC20_ABI = [
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "authorizer", "type": "address"},
            {"name": "nonce", "type": "bytes32"},
        ],
        "name": "authorizationState",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "validAfter", "type": "uint256"},
            {"name": "validBefore", "type": "uint256"},
            {"name": "nonce", "type": "bytes32"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"},
        ],
        "name": "transferWithAuthorization",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]
