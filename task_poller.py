"""
Polling loops that feed work into the TaskPipeline.

LedgerPoller      — picks up created tasks from the local ledger
ChainEventPoller  — follows TaskCreated events block range by block range

Both run either in a daemon thread (start/stop) or in the foreground
(run_forever). stop() prevents new ticks and waits for the in-flight one.
"""

import logging
import threading

logger = logging.getLogger(__name__)

LEDGER_POLL_INTERVAL = 10  # seconds
CHAIN_POLL_INTERVAL = 12   # seconds


class TaskPoller:
    name = "poller"

    def __init__(self, interval):
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def tick(self):
        raise NotImplementedError

    def _safe_tick(self):
        try:
            return self.tick()
        except Exception as e:
            logger.error("%s tick failed: %s", self.name, e)
            return 0

    def run_forever(self):
        """Tick until stop() is called."""
        logger.info("%s started | interval=%ss", self.name, self.interval)
        while not self._stop_event.is_set():
            self._safe_tick()
            self._stop_event.wait(self.interval)
        logger.info("%s stopped", self.name)

    def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout=None):
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)


class LedgerPoller(TaskPoller):
    name = "ledger-poller"

    def __init__(self, ledger, pipeline, interval=LEDGER_POLL_INTERVAL):
        super().__init__(interval)
        self.ledger = ledger
        self.pipeline = pipeline

    def tick(self):
        processed = 0
        for task in self.ledger.pending():
            if self._stop_event.is_set():
                break
            try:
                if self.pipeline.process(task["id"]) is not None:
                    processed += 1
            except Exception as e:
                logger.error("error processing task %s: %s", task["id"], e)
        return processed


class ChainEventPoller(TaskPoller):
    name = "chain-poller"

    def __init__(self, chain, ledger, pipeline, interval=CHAIN_POLL_INTERVAL, start_block=None):
        super().__init__(interval)
        self.chain = chain
        self.ledger = ledger
        self.pipeline = pipeline
        self.seen = set()
        # Events are read from last_block + 1
        self.last_block = start_block - 1 if start_block is not None else None

    def tick(self):
        current = self.chain.block_number()
        if self.last_block is None:
            self.last_block = current
            logger.info("starting from block %d", current)
            return 0
        if current <= self.last_block:
            return 0

        # Watermark moves only once this query has succeeded
        events = self.chain.task_created_events(self.last_block + 1, current)

        processed = 0
        for event in events:
            key = str(event.task_id)
            if key in self.seen:
                continue
            self.seen.add(key)

            logger.info(
                "task created | id=%s creator=%s fee=%s block=%s",
                key, event.creator, event.fee, event.block_number,
            )
            try:
                details = self.chain.get_task(event.task_id)
                snapshot = {k: v for k, v in details.items() if k != "description"}
                snapshot["blockNumber"] = event.block_number
                self.ledger.add_chain_task(key, details.get("description", ""), _jsonable(snapshot))
                if self.pipeline.process(key) is not None:
                    processed += 1
            except Exception as e:
                logger.error("error processing task %s: %s", key, e)

        self.last_block = current
        return processed


def _jsonable(values):
    out = {}
    for key, value in values.items():
        if isinstance(value, (bytes, bytearray)):
            out[key] = "0x" + bytes(value).hex()
        elif isinstance(value, int) and not isinstance(value, bool) and abs(value) > 2 ** 53:
            out[key] = str(value)
        else:
            out[key] = value
    return out
