"""Main application - wires services together and runs the mint worker."""
import signal
import sys
from dataclasses import dataclass

from castmint.logging_conf import logger
from castmint import settings
from castmint.chain import SplitsClient, TokenClient
from castmint.db import HistoryStore
from castmint.errors import CastmintError, StoreConnectionError
from castmint.health import HealthMonitor, HealthReporter
from castmint.ingest import IngestService
from castmint.ipfs import PinataStorage
from castmint.neynar_client import NeynarClient
from castmint.pipeline import MintPipeline
from castmint.queue.dedup import DedupGate
from castmint.queue.mint_queue import MintQueue
from castmint.queue.store import QueueStore
from castmint.renderer import RenderClient
from castmint.retry import RetryPolicy
from castmint.worker import Worker


@dataclass
class Services:
    """Everything built from configuration, shared by the API and the worker."""

    store: QueueStore
    queue: MintQueue
    dedup: DedupGate
    history: HistoryStore
    social: NeynarClient
    pipeline: MintPipeline
    health: HealthMonitor
    reporter: HealthReporter
    ingest: IngestService
    worker: Worker

    def connect(self):
        """Open the queue store. Raises StoreConnectionError if unreachable."""
        self.store.connect()

    def close(self):
        """Release the queue store and database connections."""
        self.store.close()
        self.history.close()


def build_services() -> Services:
    """Build the service graph from settings. Does not open any connection."""
    # BRPOP holds the socket open for the whole poll interval
    store = QueueStore(settings.REDIS_URL, socket_timeout=max(10.0, settings.POLL_INTERVAL + 5))
    queue = MintQueue(store, settings.MINT_QUEUE_KEY, settings.FAILED_QUEUE_KEY)
    dedup = DedupGate(store, settings.PROCESSED_SET_KEY)
    history = HistoryStore(settings.DATABASE_URL, max_connections=settings.DB_POOL_MAX)
    social = NeynarClient(
        settings.NEYNAR_API_KEY,
        settings.NEYNAR_SIGNER_UUID,
        settings.NEYNAR_API_BASE,
        timeout=settings.API_TIMEOUT,
    )
    retry_policy = RetryPolicy(
        max_attempts=settings.MAX_RETRIES,
        base_delay=settings.RETRY_BASE_DELAY,
        max_delay=settings.RETRY_MAX_DELAY,
        rate_limit_delay=settings.RATE_LIMIT_DELAY,
    )
    pipeline = MintPipeline(
        social=social,
        renderer=RenderClient(settings.RENDER_API_URL, settings.SERVICE_API_KEY, timeout=settings.API_TIMEOUT),
        storage=PinataStorage(settings.PINATA_JWT, settings.PINATA_API_BASE),
        splits=SplitsClient(settings.CHAIN_API_URL, settings.SERVICE_API_KEY),
        tokens=TokenClient(settings.CHAIN_API_URL, settings.SERVICE_API_KEY),
        history=history,
        dedup=dedup,
        retry_policy=retry_policy,
        contract_address=settings.NFT_CONTRACT_ADDRESS,
        platform_wallet=settings.PLATFORM_WALLET,
        collect_url_base=settings.COLLECT_URL_BASE,
        collect_referrer=settings.COLLECT_REFERRER,
    )
    health = HealthMonitor(max_errors=settings.MAX_RECENT_ERRORS)
    worker = Worker(
        queue,
        pipeline,
        health,
        poll_interval=settings.POLL_INTERVAL,
        shutdown_poll_interval=settings.SHUTDOWN_POLL_INTERVAL,
    )
    return Services(
        store=store,
        queue=queue,
        dedup=dedup,
        history=history,
        social=social,
        pipeline=pipeline,
        health=health,
        reporter=HealthReporter(health, queue),
        ingest=IngestService(queue, dedup, history, social, min_score=settings.MIN_USER_SCORE),
        worker=worker,
    )


class Application:
    """Standalone worker process: drains the mint queue until signalled."""

    def __init__(self, services: Services = None):
        self.services = services
        self.running = False

    def start(self):
        """Validate configuration and connect to the queue store."""
        logger.info("=" * 50)
        logger.info("castmint worker")
        logger.info("=" * 50)
        logger.info(f"Poll interval: {settings.POLL_INTERVAL}s")
        logger.info(f"Max retries per call: {settings.MAX_RETRIES}")
        logger.info("=" * 50)

        settings.validate_config()
        if self.services is None:
            self.services = build_services()
        self.services.connect()
        self.services.history.ensure_schema()
        self.running = True
        logger.info("Started - watching the mint queue")

    def request_stop(self):
        """Begin a graceful shutdown; the loop exits after the in-flight item."""
        if self.services is not None:
            self.services.worker.request_stop()

    def stop(self):
        """Release connections."""
        if not self.running:
            return
        self.running = False
        self.services.health.mark_stopped()
        self.services.close()
        logger.info("Stopped")

    def run(self):
        """Main loop."""
        self.start()
        try:
            self.services.worker.run_forever()
        finally:
            self.stop()


def main():
    """Entry point."""
    app = Application()

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        app.request_stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.run()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except StoreConnectionError as e:
        logger.error(f"Failed to connect to queue store: {e}")
        sys.exit(1)
    except CastmintError as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
