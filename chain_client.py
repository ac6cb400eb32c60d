"""
Chain Client — read/write wrapper around the TaskManager and LogosRegistry
contracts. The contracts own escrow, fees and the on-chain task lifecycle;
this module only issues calls and waits for receipts.

Reads:  block_number, balance, network_info, get_task, get_agent,
        agent_count, task_created_events
Writes: assign_task, fulfill_task, claim_fee (each waits for its receipt)
"""

import json
import logging
from collections import namedtuple

from web3 import Web3

from service_config import load_contract_addresses
from service_errors import ChainError, ConfigurationError

logger = logging.getLogger(__name__)

RPC_TIMEOUT_SECONDS = 30
RECEIPT_TIMEOUT_SECONDS = 180

TASK_STATUS_NAMES = ["Created", "InProgress", "Fulfilled", "Cancelled", "Disputed"]

NETWORK_NAMES = {
    31337: "Hardhat Local",
    1337: "Localhost",
    84532: "Base Sepolia",
    8453: "Base Mainnet",
}

TaskCreatedEvent = namedtuple("TaskCreatedEvent", ["task_id", "creator", "fee", "block_number", "log_index"])

_TASK_COMPONENTS = [
    {"internalType": "uint256", "name": "id", "type": "uint256"},
    {"internalType": "address", "name": "creator", "type": "address"},
    {"internalType": "string", "name": "description", "type": "string"},
    {"internalType": "uint256", "name": "bountyAmount", "type": "uint256"},
    {"internalType": "uint256", "name": "qiBudget", "type": "uint256"},
    {"internalType": "uint256", "name": "deadline", "type": "uint256"},
    {"internalType": "uint8", "name": "status", "type": "uint8"},
    {"internalType": "uint256", "name": "assignedLogosId", "type": "uint256"},
    {"internalType": "string", "name": "resultCID", "type": "string"},
    {"internalType": "uint256", "name": "createdAt", "type": "uint256"},
]

TASK_MANAGER_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "uint256", "name": "taskId", "type": "uint256"},
            {"indexed": True, "internalType": "address", "name": "creator", "type": "address"},
            {"indexed": False, "internalType": "uint256", "name": "fee", "type": "uint256"},
        ],
        "name": "TaskCreated",
        "type": "event",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "taskId", "type": "uint256"}],
        "name": "getTask",
        "outputs": [{"components": _TASK_COMPONENTS, "internalType": "struct TaskManager.Task", "name": "", "type": "tuple"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "taskId", "type": "uint256"},
            {"internalType": "uint256", "name": "logosId", "type": "uint256"},
        ],
        "name": "assignTask",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "taskId", "type": "uint256"},
            {"internalType": "string", "name": "resultCID", "type": "string"},
        ],
        "name": "fulfillTask",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "taskId", "type": "uint256"}],
        "name": "claimFee",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

LOGOS_REGISTRY_ABI = [
    {
        "inputs": [],
        "name": "totalLogosCount",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "logosId", "type": "uint256"}],
        "name": "getLOGOS",
        "outputs": [{
            "components": [
                {"internalType": "uint256", "name": "id", "type": "uint256"},
                {"internalType": "address", "name": "owner", "type": "address"},
                {"internalType": "string", "name": "name", "type": "string"},
                {"internalType": "string", "name": "description", "type": "string"},
                {"internalType": "uint256", "name": "createdAt", "type": "uint256"},
            ],
            "internalType": "struct LogosRegistry.LOGOS",
            "name": "",
            "type": "tuple",
        }],
        "stateMutability": "view",
        "type": "function",
    },
]


def load_abi(path, default):
    """Load an ABI from a hardhat artifact ({"abi": [...]}) or a bare list; default when no path."""
    if not path:
        return default
    with open(path, 'r') as f:
        data = json.load(f)
    return data["abi"] if isinstance(data, dict) else data


def _output_components(abi, fn_name):
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == fn_name:
            outputs = entry.get("outputs") or []
            if len(outputs) == 1 and outputs[0].get("type") == "tuple":
                return outputs[0].get("components", [])
            return outputs
    return []


def decode_struct(components, value):
    """Name a tuple return value by its ABI components. Dicts pass through."""
    if isinstance(value, dict):
        return dict(value)
    names = [c.get("name") or f"field{i}" for i, c in enumerate(components)]
    return dict(zip(names, value))


def task_status_name(status):
    try:
        return TASK_STATUS_NAMES[int(status)]
    except (IndexError, TypeError, ValueError):
        return "Unknown"


def event_from_log(log):
    args = log["args"]
    return TaskCreatedEvent(
        task_id=int(args["taskId"]),
        creator=args.get("creator"),
        fee=int(args.get("fee", 0)),
        block_number=int(log["blockNumber"]),
        log_index=int(log.get("logIndex", 0)),
    )


def _hex(value):
    if hasattr(value, "hex") and callable(value.hex):
        text = value.hex()
    else:
        text = str(value)
    return text if text.startswith("0x") else "0x" + text


class ChainClient:
    def __init__(self, settings, web3=None):
        self.settings = settings
        self.w3 = web3 or Web3(Web3.HTTPProvider(settings.rpc_url, request_kwargs={"timeout": RPC_TIMEOUT_SECONDS}))

        addresses = load_contract_addresses(settings)
        self.task_manager_abi = load_abi(settings.task_manager_abi_path, TASK_MANAGER_ABI)
        self.registry_abi = load_abi(settings.logos_registry_abi_path, LOGOS_REGISTRY_ABI)
        self.task_manager = self.w3.eth.contract(
            address=Web3.to_checksum_address(addresses["TaskManager"]), abi=self.task_manager_abi
        )
        self.logos_registry = None
        if addresses.get("LogosRegistry"):
            self.logos_registry = self.w3.eth.contract(
                address=Web3.to_checksum_address(addresses["LogosRegistry"]), abi=self.registry_abi
            )

        self.account = None
        if settings.private_key:
            self.account = self.w3.eth.account.from_key(settings.private_key)

    @property
    def address(self):
        return self.account.address if self.account else None

    # === Reads ===

    def block_number(self):
        return int(self.w3.eth.block_number)

    def balance(self, address=None):
        address = address or self.address
        if not address:
            raise ConfigurationError("No address given and PRIVATE_KEY not set")
        return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))

    def network_info(self):
        chain_id = int(self.w3.eth.chain_id)
        return {"chainId": chain_id, "name": NETWORK_NAMES.get(chain_id, "Unknown")}

    def get_task(self, task_id):
        raw = self.task_manager.functions.getTask(int(task_id)).call()
        task = decode_struct(_output_components(self.task_manager_abi, "getTask"), raw)
        if "status" in task:
            task["statusName"] = task_status_name(task["status"])
        return task

    def get_agent(self, agent_id):
        if self.logos_registry is None:
            raise ConfigurationError("LogosRegistry address not configured")
        raw = self.logos_registry.functions.getLOGOS(int(agent_id)).call()
        return decode_struct(_output_components(self.registry_abi, "getLOGOS"), raw)

    def agent_count(self):
        if self.logos_registry is None:
            raise ConfigurationError("LogosRegistry address not configured")
        return int(self.logos_registry.functions.totalLogosCount().call())

    def task_created_events(self, from_block, to_block):
        """TaskCreated logs in [from_block, to_block], in log order."""
        logs = self.task_manager.events.TaskCreated().get_logs(from_block=from_block, to_block=to_block)
        events = [event_from_log(log) for log in logs]
        events.sort(key=lambda e: (e.block_number, e.log_index))
        return events

    # === Writes ===

    def _transact(self, label, fn):
        if self.account is None:
            raise ConfigurationError("PRIVATE_KEY not set: cannot sign transactions")

        tx_hash = None
        try:
            tx = fn.build_transaction({
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = _hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))
            logger.info("%s sent | tx=%s", label, tx_hash)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT_SECONDS)
        except Exception as e:
            raise ChainError(f"{label} failed: {e}", tx_hash=tx_hash) from e

        if receipt.get("status") == 0:
            raise ChainError(f"{label} reverted (tx {tx_hash})", tx_hash=tx_hash)

        return {
            "transactionHash": tx_hash,
            "blockNumber": int(receipt["blockNumber"]),
            "status": int(receipt.get("status", 1)),
        }

    def assign_task(self, task_id, agent_id):
        return self._transact("assignTask", self.task_manager.functions.assignTask(int(task_id), int(agent_id)))

    def fulfill_task(self, task_id, cid):
        return self._transact("fulfillTask", self.task_manager.functions.fulfillTask(int(task_id), cid))

    def claim_fee(self, task_id):
        return self._transact("claimFee", self.task_manager.functions.claimFee(int(task_id)))
