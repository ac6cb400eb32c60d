"""
Task Processing Pipeline — one task, strictly sequential steps:

    claim → [assign] → generate → store → [fulfill] → [claim fee] → complete

Bracketed steps run only when a chain client is attached. A failure in
any step marks the task failed and skips the rest; nothing is retried and
nothing is raised to the caller.
"""

import time
import logging

from task_ledger import STATUS_COMPLETED

logger = logging.getLogger(__name__)

# Heuristic pause between fulfillTask and claimFee so the node serves the
# post-fulfill state; it is not a finality guarantee.
FEE_CLAIM_SETTLE_SECONDS = 1.0


class TaskPipeline:
    def __init__(self, ledger, provider, store, chain=None, agent_id=1,
                 settle_seconds=FEE_CLAIM_SETTLE_SECONDS):
        self.ledger = ledger
        self.provider = provider
        self.store = store
        self.chain = chain
        self.agent_id = agent_id
        self.settle_seconds = settle_seconds

    def _record(self, task_id, step, receipt):
        self.ledger.record_transaction(task_id, step, receipt.get("transactionHash"), receipt.get("blockNumber"))

    def _run_steps(self, task):
        task_id = task["id"]

        if self.chain:
            logger.info("task %s | 1/5 assigning to LOGOS #%s", task_id, self.agent_id)
            receipt = self.chain.assign_task(task_id, self.agent_id)
            self._record(task_id, "assign", receipt)
            logger.info("task %s | assigned (block %s)", task_id, receipt.get("blockNumber"))

        logger.info("task %s | 2/5 generating result", task_id)
        result = self.provider.generate(task["description"])

        logger.info("task %s | 3/5 storing result", task_id)
        stored = self.store.store(result)

        if self.chain:
            logger.info("task %s | 4/5 fulfilling with %s", task_id, stored.cid)
            receipt = self.chain.fulfill_task(task_id, stored.cid)
            self._record(task_id, "fulfill", receipt)
            logger.info("task %s | fulfilled (block %s)", task_id, receipt.get("blockNumber"))

            time.sleep(self.settle_seconds)
            logger.info("task %s | 5/5 claiming fee", task_id)
            receipt = self.chain.claim_fee(task_id)
            self._record(task_id, "claimFee", receipt)
            logger.info("task %s | fee claimed (block %s)", task_id, receipt.get("blockNumber"))

        return result, stored

    def process(self, task_id, claimed=None):
        """
        Run one task through the pipeline.
        Pass claimed when the caller already holds the record in processing
        (see TaskLedger.create(claimed=True)).
        Returns the final record, or None when the task was not claimable.
        """
        task = claimed if claimed is not None else self.ledger.claim(task_id)
        if task is None:
            logger.debug("task %s not claimable, skipping", task_id)
            return None

        logger.info("processing task %s: %.80s", task_id, task["description"])
        try:
            result, stored = self._run_steps(task)
        except Exception as e:
            logger.error("task %s failed: %s", task_id, e)
            return self.ledger.fail(task_id, str(e))

        final = self.ledger.complete(task_id, result, stored.cid, stored.source)
        logger.info("task %s %s | cid=%s storage=%s", task_id, STATUS_COMPLETED, stored.cid, stored.source)
        return final
