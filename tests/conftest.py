import json

import pytest
import requests

from ipfs_store import StoreResult, SOURCE_PINATA
from service_config import Settings
from task_ledger import TaskLedger


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Records post() calls and replays queued responses (or raises queued exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeProvider:
    def __init__(self, text="generated result", error=None, on_call=None):
        self.text = text
        self.error = error
        self.on_call = on_call
        self.calls = []

    def generate(self, description):
        self.calls.append(description)
        if self.on_call:
            self.on_call(description)
        if self.error:
            raise self.error
        return self.text


class FakeStore:
    def __init__(self, cid="bafyfakecid"):
        self.cid = cid
        self.calls = []

    def store(self, content):
        self.calls.append(content)
        return StoreResult(self.cid, SOURCE_PINATA, None)


class FakeChain:
    """In-memory stand-in for ChainClient."""

    def __init__(self, block=100, events=None, tasks=None, fail_on=None):
        self.block = block
        self.events = events or []
        self.tasks = tasks or {}
        self.fail_on = fail_on
        self.calls = []
        self.event_queries = []

    def block_number(self):
        if isinstance(self.block, Exception):
            raise self.block
        return self.block

    def task_created_events(self, from_block, to_block):
        self.event_queries.append((from_block, to_block))
        if isinstance(self.events, Exception):
            raise self.events
        return [e for e in self.events if from_block <= e.block_number <= to_block]

    def get_task(self, task_id):
        if int(task_id) not in self.tasks:
            raise KeyError(f"no task {task_id}")
        return dict(self.tasks[int(task_id)])

    def _tx(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail_on == name:
            raise RuntimeError(f"{name} reverted")
        return {"transactionHash": f"0x{name}", "blockNumber": self.block, "status": 1}

    def assign_task(self, task_id, agent_id):
        return self._tx("assign_task", task_id, agent_id)

    def fulfill_task(self, task_id, cid):
        return self._tx("fulfill_task", task_id, cid)

    def claim_fee(self, task_id):
        return self._tx("claim_fee", task_id)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=str(tmp_path),
        tasks_file=str(tmp_path / "data" / "tasks.json"),
        ai_api_key="sk-test",
        pinata_jwt="",
    )


@pytest.fixture
def ledger(settings):
    return TaskLedger(settings.tasks_file)


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
