"""
Service configuration — every setting comes from environment variables.

Both processes (web service and contract listener) call Settings.from_env()
once at startup and hand the result to build_context().

Env vars:
  PORT, DATA_DIR, TASKS_FILE, CHAIN_TASKS_FILE, POLL_INTERVAL_SECONDS, CHAIN_POLL_INTERVAL_SECONDS
  AI_API_URL, AI_API_KEY | DEEPSEEK_API_KEY | OPENAI_API_KEY, AI_MODEL_NAME,
  AI_MAX_TOKENS, AI_TEMPERATURE, AI_AUTH_STYLE, AI_EXTRA_HEADERS, AI_TIMEOUT_SECONDS
  PINATA_JWT, PINATA_API_VERSION, PINATA_API_URL, PINATA_UPLOADS_URL, IPFS_GATEWAY
  NETWORK_RPC_URL, PRIVATE_KEY, TASK_MANAGER_ADDRESS, LOGOS_REGISTRY_ADDRESS,
  CONTRACTS_FILE, TASK_MANAGER_ABI_PATH, LOGOS_REGISTRY_ABI_PATH,
  DEFAULT_LOGOS_ID, START_BLOCK
  CORS_ORIGINS, TASKS_RATE_LIMIT, REDIS_URL, LOG_LEVEL
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from service_errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_AI_API_URL = "https://api.deepseek.com/v1/chat/completions"
DEFAULT_AI_MODEL = "deepseek-chat"
DEFAULT_RPC_URL = "http://127.0.0.1:8545"
LOCAL_CONTRACTS_FILE = "contracts.local.json"
TESTNET_CONTRACTS_FILE = "contracts.baseSepolia.json"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _first_env(environ, *names, default=None):
    """Return the first non-empty value among names, in order."""
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return default


def _int_env(environ, name, default):
    raw = environ.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _float_env(environ, name, default):
    raw = environ.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass
class Settings:
    port: int = 3001
    data_dir: str = "./data"
    tasks_file: str = "./data/tasks.json"
    chain_tasks_file: str = "./data/chain_tasks.json"
    poll_interval_seconds: float = 10.0
    chain_poll_interval_seconds: float = 12.0

    ai_api_url: str = DEFAULT_AI_API_URL
    ai_api_key: str = ""
    ai_model: str = DEFAULT_AI_MODEL
    ai_max_tokens: int = 1500
    ai_temperature: float = 0.7
    ai_auth_style: str = "bearer"  # "bearer" or "header"
    ai_extra_headers: dict = field(default_factory=dict)
    ai_timeout_seconds: float = 120.0

    pinata_jwt: str = ""
    pinata_api_version: str = "v1"  # "v1" JSON envelope, "v3" multipart files
    pinata_api_url: str = "https://api.pinata.cloud"
    pinata_uploads_url: str = "https://uploads.pinata.cloud"
    ipfs_gateway: str = "https://ipfs.io"

    rpc_url: str = DEFAULT_RPC_URL
    private_key: str = ""
    task_manager_address: str = ""
    logos_registry_address: str = ""
    contracts_file: str = ""
    task_manager_abi_path: str = ""
    logos_registry_abi_path: str = ""
    default_logos_id: int = 1
    start_block: Optional[int] = None

    cors_origins: list = field(default_factory=lambda: ["*"])
    tasks_rate_limit: str = "10 per minute"
    limiter_storage_uri: str = "memory://"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ

        data_dir = env.get("DATA_DIR") or "./data"
        extra_headers = {}
        raw_headers = env.get("AI_EXTRA_HEADERS", "")
        if raw_headers:
            try:
                extra_headers = json.loads(raw_headers)
            except json.JSONDecodeError:
                logger.warning("AI_EXTRA_HEADERS is not valid JSON, ignoring")

        origins = [o.strip() for o in env.get("CORS_ORIGINS", "*").split(",") if o.strip()]

        return cls(
            port=_int_env(env, "PORT", 3001),
            data_dir=data_dir,
            tasks_file=env.get("TASKS_FILE") or os.path.join(data_dir, "tasks.json"),
            chain_tasks_file=env.get("CHAIN_TASKS_FILE") or os.path.join(data_dir, "chain_tasks.json"),
            poll_interval_seconds=_float_env(env, "POLL_INTERVAL_SECONDS", 10.0),
            chain_poll_interval_seconds=_float_env(env, "CHAIN_POLL_INTERVAL_SECONDS", 12.0),
            ai_api_url=env.get("AI_API_URL") or DEFAULT_AI_API_URL,
            # Generic key first, then provider-specific keys
            ai_api_key=_first_env(env, "AI_API_KEY", "DEEPSEEK_API_KEY", "OPENAI_API_KEY", default=""),
            ai_model=env.get("AI_MODEL_NAME") or DEFAULT_AI_MODEL,
            ai_max_tokens=_int_env(env, "AI_MAX_TOKENS", 1500),
            ai_temperature=_float_env(env, "AI_TEMPERATURE", 0.7),
            ai_auth_style=(env.get("AI_AUTH_STYLE") or "bearer").lower(),
            ai_extra_headers=extra_headers,
            ai_timeout_seconds=_float_env(env, "AI_TIMEOUT_SECONDS", 120.0),
            pinata_jwt=env.get("PINATA_JWT", ""),
            pinata_api_version=(env.get("PINATA_API_VERSION") or "v1").lower(),
            pinata_api_url=(env.get("PINATA_API_URL") or "https://api.pinata.cloud").rstrip("/"),
            pinata_uploads_url=(env.get("PINATA_UPLOADS_URL") or "https://uploads.pinata.cloud").rstrip("/"),
            ipfs_gateway=(env.get("IPFS_GATEWAY") or "https://ipfs.io").rstrip("/"),
            rpc_url=env.get("NETWORK_RPC_URL") or DEFAULT_RPC_URL,
            private_key=env.get("PRIVATE_KEY", ""),
            task_manager_address=env.get("TASK_MANAGER_ADDRESS", ""),
            logos_registry_address=env.get("LOGOS_REGISTRY_ADDRESS", ""),
            contracts_file=env.get("CONTRACTS_FILE", ""),
            task_manager_abi_path=env.get("TASK_MANAGER_ABI_PATH", ""),
            logos_registry_abi_path=env.get("LOGOS_REGISTRY_ABI_PATH", ""),
            default_logos_id=_int_env(env, "DEFAULT_LOGOS_ID", 1),
            start_block=_int_env(env, "START_BLOCK", None),
            cors_origins=origins or ["*"],
            tasks_rate_limit=env.get("TASKS_RATE_LIMIT") or "10 per minute",
            limiter_storage_uri=env.get("REDIS_URL") or "memory://",
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )

    @property
    def is_local_chain(self):
        return "127.0.0.1" in self.rpc_url or "localhost" in self.rpc_url


def startup_warnings(settings):
    """
    Check for missing or suspicious credentials.
    Returns a list of warning strings; callers log them and keep running.
    """
    warnings = []

    token = settings.pinata_jwt
    if not token:
        warnings.append(
            "PINATA_JWT not set: results will get locally derived content ids "
            "(get a JWT from https://app.pinata.cloud/developers/api-keys)"
        )
    else:
        if not token.startswith("eyJ") or token.count(".") != 2:
            warnings.append("PINATA_JWT does not look like a JWT (expected 'eyJ...' with two dots)")
        if len(token) < 50:
            warnings.append(f"PINATA_JWT seems short for a JWT ({len(token)} chars)")

    if not settings.ai_api_key:
        warnings.append(
            "No completion API key (AI_API_KEY, DEEPSEEK_API_KEY or OPENAI_API_KEY): "
            "every task will be marked failed"
        )

    if not settings.private_key:
        warnings.append("PRIVATE_KEY not set: the contract listener cannot sign transactions")

    return warnings


def load_contract_addresses(settings):
    """
    Resolve contract addresses.
    Order: env vars, explicit CONTRACTS_FILE, network-specific file, local file.
    """
    if settings.task_manager_address and settings.logos_registry_address:
        logger.info("loading contracts from environment variables")
        return {
            "TaskManager": settings.task_manager_address,
            "LogosRegistry": settings.logos_registry_address,
        }

    candidates = []
    if settings.contracts_file:
        candidates.append(settings.contracts_file)
    candidates.append(LOCAL_CONTRACTS_FILE if settings.is_local_chain else TESTNET_CONTRACTS_FILE)
    candidates.append(LOCAL_CONTRACTS_FILE)

    for path in candidates:
        if not os.path.exists(path):
            continue
        logger.info("loading contracts from %s", path)
        with open(path, 'r') as f:
            data = json.load(f)
        contracts = data.get("contracts", data) if isinstance(data, dict) else None
        if not isinstance(contracts, dict):
            raise ConfigurationError(f"{path} must hold a JSON object of contract addresses")
        if contracts.get("TaskManager"):
            return contracts

    raise ConfigurationError(
        "No contract addresses: set TASK_MANAGER_ADDRESS and LOGOS_REGISTRY_ADDRESS "
        f"or provide {LOCAL_CONTRACTS_FILE}"
    )


def configure_logging(level="INFO"):
    """Attach one console handler to the root logger."""
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        root.addHandler(handler)
