import sys
from pathlib import Path

from loguru import logger

from notegraph.api import create_app
from notegraph.config import settings
from notegraph.index_store.local import LocalGraphIndexStore
from notegraph.ingestion.orchestrator import IndexingOrchestrator
from notegraph.note_sources.local import LocalNoteSource
from notegraph.service import KnowledgeIndex

logger.configure(handlers=[{"sink": sys.stderr, "level": settings.log_level}])

logger.info(f"Initializing knowledge index for {settings.notes_folder}")
index = KnowledgeIndex.from_settings(settings)
index_store = LocalGraphIndexStore(filepath=settings.local_index_path)

if Path(settings.local_index_path).exists():
    index_store.restore_into(index.store)
else:
    IndexingOrchestrator(
        source=LocalNoteSource(settings.notes_folder),
        store=index.store,
        index_store=index_store,
    ).rebuild()

app = create_app(index=index, analysis_timeout=settings.analysis_timeout)
