"""Worker for processing queued mint requests."""
import time
import threading
from typing import Optional

from castmint.errors import PipelineError, StoreConnectionError
from castmint.health import HealthMonitor
from castmint.logging_conf import logger
from castmint.pipeline import MintPipeline
from castmint.queue.mint_queue import MintQueue
from castmint.queue.models import WorkItem

# Outcomes of a single loop iteration
TICK_PROCESSED = "processed"
TICK_EMPTY = "empty"
TICK_BUSY = "busy"
TICK_STOPPED = "stopped"
TICK_STORE_ERROR = "store_error"


class Worker:
    """
    Single consumer of the mint queue.

    At most one pipeline runs at a time. After each item, success or not,
    the loop waits ``poll_interval`` before the next dequeue. When the queue
    is empty it blocks on the store for up to ``poll_interval`` instead.
    Failed items go to the failed list and are not retried.
    """

    def __init__(self, queue: MintQueue, pipeline: MintPipeline, health: HealthMonitor,
                 poll_interval: float = 5.0, shutdown_poll_interval: float = 0.5,
                 blocking_pop: bool = True):
        self.queue = queue
        self.pipeline = pipeline
        self.health = health
        self.poll_interval = poll_interval
        self.shutdown_poll_interval = shutdown_poll_interval
        self.blocking_pop = blocking_pop
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._shutting_down = False
        self._processing = False
        self._lock = threading.Lock()
        self._wake = threading.Event()

    @property
    def processing(self) -> bool:
        return self._processing

    def start(self):
        """Start the worker in a background thread."""
        if self.running:
            logger.warning("Worker is already running")
            return

        self._begin()
        self.thread = threading.Thread(target=self._run, name="mint-worker", daemon=True)
        self.thread.start()
        logger.info("Worker started")

    def run_forever(self):
        """Run the loop on the calling thread until a stop is requested."""
        self._begin()
        self._run()

    def request_stop(self):
        """Ask the loop to stop after the in-flight item. Safe from signal handlers."""
        if self._shutting_down:
            return
        logger.info("Shutting down worker...")
        self._shutting_down = True
        self.running = False
        self.health.mark_shutting_down()
        self._wake.set()

    def stop(self, timeout: Optional[float] = None):
        """Stop the worker, waiting for any in-flight item to finish."""
        self.request_stop()

        # The lock covers the dequeue as well as the pipeline, so an item
        # popped after the stop request is either put back or run to the end
        if self._lock.locked():
            logger.info("Waiting for current item to finish processing...")
        waited = 0.0
        while self._lock.locked():
            if timeout is not None and waited >= timeout:
                logger.warning(f"Item still processing after {timeout}s; stopping anyway")
                break
            time.sleep(self.shutdown_poll_interval)
            waited += self.shutdown_poll_interval

        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=self.poll_interval + self.shutdown_poll_interval + 5)
            self.thread = None

        self.health.mark_stopped()
        logger.info("Worker stopped")

    def tick(self) -> str:
        """One loop iteration: dequeue at most one item and run it."""
        if self._shutting_down:
            logger.debug("Shutdown in progress, skipping next item")
            return TICK_STOPPED

        if not self._lock.acquire(blocking=False):
            logger.info("Already processing an item, skipping...")
            return TICK_BUSY

        try:
            try:
                timeout = self.poll_interval if self.blocking_pop else None
                item = self.queue.dequeue(timeout=timeout)
            except StoreConnectionError as e:
                logger.error(f"Dequeue failed: {e}")
                self.health.record_error(str(e))
                return TICK_STORE_ERROR

            if item is None:
                self.health.mark_idle(queue_size=0)
                return TICK_EMPTY

            if self._shutting_down:
                logger.info(f"Shutdown requested during dequeue, returning {item.work_hash} to the queue")
                try:
                    self.queue.return_item(item)
                except StoreConnectionError as e:
                    logger.error(f"Could not return item {item.to_json()} to the queue: {e}")
                return TICK_STOPPED

            self._process(item)
            return TICK_PROCESSED
        finally:
            self._lock.release()

    def _begin(self):
        self.running = True
        self._shutting_down = False
        self._wake.clear()

    def _run(self):
        """Main worker loop."""
        logger.info(
            f"Worker loop started (poll interval: {self.poll_interval}s, "
            f"blocking pop: {self.blocking_pop})"
        )

        while self.running:
            try:
                outcome = self.tick()
            except Exception as e:
                logger.error(f"Worker error: {e}", exc_info=True)
                self.health.record_error(str(e))
                outcome = TICK_STORE_ERROR

            if not self.running:
                break

            # An empty blocking pop has already waited out the interval
            if outcome != TICK_EMPTY or not self.blocking_pop:
                self._wake.wait(self.poll_interval)

        logger.info("Worker loop stopped")

    def _process(self, item: WorkItem):
        self._processing = True
        self.health.mark_processing()
        try:
            result = self.pipeline.run(item)
            self.health.mark_success()
            logger.info(
                f"Successfully processed mint {item.work_hash} "
                f"(token {result.record.token_id}, notified: {result.notified})"
            )
        except PipelineError as e:
            self._record_failure(item, e.reason, e.step, e.code)
        except Exception as e:
            logger.error(f"Unexpected error processing {item.work_hash}: {e}", exc_info=True)
            self._record_failure(item, str(e) or type(e).__name__, None, "INTERNAL_ERROR")
        finally:
            self._processing = False

    def _record_failure(self, item: WorkItem, reason: str, step: Optional[str], code: Optional[str]):
        message = f"{item.work_hash} [{step or 'unknown'}]: {reason}"
        try:
            self.queue.add_failed(item, reason, step=step, code=code)
            added = True
        except StoreConnectionError as e:
            # Keep the payload in the logs so the item can be recovered by hand
            logger.error(f"Could not record failed item {item.to_json()}: {e}")
            added = False
        self.health.mark_failure(message, failed=added)
