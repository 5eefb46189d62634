import pytest

from castmint.app import Services
from castmint.health import HealthMonitor, HealthReporter
from castmint.ingest import IngestService
from castmint.pipeline import MintPipeline
from castmint.queue.dedup import DedupGate
from castmint.queue.mint_queue import MintQueue
from castmint.queue.store import QueueStore
from castmint.retry import RetryPolicy
from castmint.worker import Worker
from tests.helpers import (
    CONTRACT_ADDRESS,
    PLATFORM_ADDRESS,
    FakeHistory,
    FakeRedis,
    FakeRenderer,
    FakeSocial,
    FakeSplits,
    FakeStorage,
    FakeTokens,
)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    store = QueueStore("redis://localhost:6379/0")
    store._client = fake_redis
    return store


@pytest.fixture
def queue(store):
    return MintQueue(store, "mint_queue", "failed_mint_queue")


@pytest.fixture
def dedup(store):
    return DedupGate(store, "processed_casts")


@pytest.fixture
def history():
    return FakeHistory()


@pytest.fixture
def social():
    return FakeSocial()


@pytest.fixture
def splits():
    return FakeSplits()


@pytest.fixture
def tokens():
    return FakeTokens()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, rate_limit_delay=0, sleep=lambda s: None)


@pytest.fixture
def pipeline(social, storage, splits, tokens, history, dedup, retry_policy):
    return MintPipeline(
        social=social,
        renderer=FakeRenderer(),
        storage=storage,
        splits=splits,
        tokens=tokens,
        history=history,
        dedup=dedup,
        retry_policy=retry_policy,
        contract_address=CONTRACT_ADDRESS,
        platform_wallet=PLATFORM_ADDRESS,
        collect_referrer="0xref",
    )


@pytest.fixture
def health():
    return HealthMonitor(max_errors=5)


@pytest.fixture
def reporter(health, queue):
    return HealthReporter(health, queue)


@pytest.fixture
def services(store, queue, dedup, history, social, pipeline, health, reporter):
    return Services(
        store=store,
        queue=queue,
        dedup=dedup,
        history=history,
        social=social,
        pipeline=pipeline,
        health=health,
        reporter=reporter,
        ingest=IngestService(queue, dedup, history, social),
        worker=Worker(queue, pipeline, health, poll_interval=0.01, blocking_pop=False),
    )
