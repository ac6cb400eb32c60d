import re

from ipfs_store import ArtifactStore, SOURCE_FALLBACK
from service_errors import AIProcessingError
from task_ledger import STATUS_COMPLETED, STATUS_FAILED, STATUS_PROCESSING
from task_pipeline import TaskPipeline
from conftest import FakeChain, FakeProvider, FakeSession, FakeStore


def test_completion_failure_marks_task_failed(ledger):
    error = AIProcessingError("AI API error: 500 - upstream", status_code=500, body="upstream")
    store = FakeStore()
    pipeline = TaskPipeline(ledger, FakeProvider(error=error), store)
    task = ledger.create("Explain zk rollups")

    final = pipeline.process(task["id"])

    assert final["status"] == STATUS_FAILED
    assert "500" in final["error"]
    assert final["isProcessing"] is False
    assert "result" not in final
    assert store.calls == []


def test_missing_pinning_credential_completes_with_derived_cid(ledger, settings):
    store = ArtifactStore(settings, session=FakeSession())
    pipeline = TaskPipeline(ledger, FakeProvider(text="the answer"), store)
    task = ledger.create("question")

    final = pipeline.process(task["id"])

    assert final["status"] == STATUS_COMPLETED
    assert final["result"] == "the answer"
    assert final["storage"] == SOURCE_FALLBACK
    assert re.match(r"^bafy[0-9a-f]{50}$", final["ipfsHash"])


def test_status_is_processing_while_generating(ledger):
    seen = []
    task = ledger.create("question")
    provider = FakeProvider(on_call=lambda _d: seen.append(ledger.get(task["id"])["status"]))
    pipeline = TaskPipeline(ledger, provider, FakeStore())

    final = pipeline.process(task["id"])

    assert seen == [STATUS_PROCESSING]
    assert final["status"] == STATUS_COMPLETED


def test_chain_steps_run_in_order_and_are_recorded(ledger):
    chain = FakeChain(block=77)
    store = FakeStore(cid="bafyresult")
    pipeline = TaskPipeline(ledger, FakeProvider(), store, chain=chain, agent_id=3, settle_seconds=0)
    task = ledger.add_chain_task("5", "on-chain task")

    final = pipeline.process(task["id"])

    assert [c[0] for c in chain.calls] == ["assign_task", "fulfill_task", "claim_fee"]
    assert chain.calls[0] == ("assign_task", "5", 3)
    assert chain.calls[1] == ("fulfill_task", "5", "bafyresult")
    assert final["status"] == STATUS_COMPLETED
    assert final["transactions"] == {
        "assign": {"hash": "0xassign_task", "block": 77},
        "fulfill": {"hash": "0xfulfill_task", "block": 77},
        "claimFee": {"hash": "0xclaim_fee", "block": 77},
    }


def test_revert_stops_remaining_steps(ledger):
    chain = FakeChain(fail_on="fulfill_task")
    pipeline = TaskPipeline(ledger, FakeProvider(), FakeStore(), chain=chain, settle_seconds=0)
    task = ledger.add_chain_task("6", "on-chain task")

    final = pipeline.process(task["id"])

    assert final["status"] == STATUS_FAILED
    assert "fulfill_task reverted" in final["error"]
    assert [c[0] for c in chain.calls] == ["assign_task", "fulfill_task"]


def test_assign_failure_skips_generation(ledger):
    provider = FakeProvider()
    chain = FakeChain(fail_on="assign_task")
    pipeline = TaskPipeline(ledger, provider, FakeStore(), chain=chain, settle_seconds=0)
    task = ledger.add_chain_task("7", "on-chain task")

    final = pipeline.process(task["id"])

    assert final["status"] == STATUS_FAILED
    assert provider.calls == []


def test_task_already_processing_is_skipped(ledger):
    provider = FakeProvider()
    pipeline = TaskPipeline(ledger, provider, FakeStore())
    task = ledger.create("question")
    ledger.claim(task["id"])

    assert pipeline.process(task["id"]) is None
    assert provider.calls == []
    assert ledger.get(task["id"])["status"] == STATUS_PROCESSING


def test_finished_task_is_not_reprocessed(ledger):
    provider = FakeProvider()
    pipeline = TaskPipeline(ledger, provider, FakeStore())
    task = ledger.create("question")

    pipeline.process(task["id"])
    assert pipeline.process(task["id"]) is None
    assert len(provider.calls) == 1


def test_runs_record_claimed_at_creation(ledger):
    provider = FakeProvider(text="answer")
    pipeline = TaskPipeline(ledger, provider, FakeStore())
    task = ledger.create("question", claimed=True)

    final = pipeline.process(task["id"], claimed=task)

    assert final["status"] == STATUS_COMPLETED
    assert final["result"] == "answer"
    assert provider.calls == ["question"]
