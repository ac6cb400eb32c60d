"""Process-wide context, built once at startup and passed by reference."""

from dataclasses import dataclass
from typing import Any, Optional

from ai_provider import CompletionProvider
from ipfs_store import ArtifactStore
from service_config import Settings
from task_ledger import TaskLedger
from task_pipeline import TaskPipeline


@dataclass
class ServiceContext:
    settings: Settings
    ledger: TaskLedger
    provider: CompletionProvider
    store: ArtifactStore
    pipeline: TaskPipeline
    chain: Optional[Any] = None


def build_context(settings=None, chain=None, ledger=None, provider=None, store=None):
    """Wire the components; any of them can be supplied (tests pass doubles)."""
    settings = settings or Settings.from_env()
    ledger = ledger or TaskLedger(settings.tasks_file)
    provider = provider or CompletionProvider(settings)
    store = store or ArtifactStore(settings)
    pipeline = TaskPipeline(
        ledger, provider, store,
        chain=chain,
        agent_id=settings.default_logos_id,
    )
    return ServiceContext(settings, ledger, provider, store, pipeline, chain)
