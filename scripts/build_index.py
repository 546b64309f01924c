"""CLI for indexing a folder of markdown notes and saving the link graph to a local JSON index"""

import argparse
import sys

from loguru import logger

from notegraph.config import settings
from notegraph.index_store.local import LocalGraphIndexStore
from notegraph.ingestion.orchestrator import IndexingOrchestrator
from notegraph.note_sources.local import LocalNoteSource
from notegraph.service import KnowledgeIndex


def main(in_folder: str, local_outfile_index: str, incremental: bool) -> None:
    logger.configure(handlers=[{"sink": sys.stderr, "level": settings.log_level}])

    index_store = LocalGraphIndexStore(filepath=local_outfile_index)
    with KnowledgeIndex.from_settings(settings) as index:
        orchestrator = IndexingOrchestrator(
            source=LocalNoteSource(in_folder),
            store=index.store,
            index_store=index_store,
        )
        if incremental and index_store.get_all_note_ids():
            index_store.restore_into(index.store)
            orchestrator.sync()
        else:
            orchestrator.rebuild()

        stats = index.store.statistics()
        print(f"Notes:        {stats.total_notes}")
        print(f"Links:        {stats.total_links}")
        print(f"Broken links: {stats.total_broken_links}")
        print(f"Orphans:      {stats.orphaned_notes}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--in-folder",
        type=str,
        required=False,
        help="Folder containing markdown files",
        default=str(settings.notes_folder),
    )
    parser.add_argument(
        "--outfile-index",
        type=str,
        required=False,
        help="Local output graph index file",
        default=settings.local_index_path,
    )
    parser.add_argument(
        "--incremental",
        action="store_true",
        help="Only apply changes since the index was last written",
    )

    args = parser.parse_args()

    main(
        in_folder=args.in_folder,
        local_outfile_index=args.outfile_index,
        incremental=args.incremental,
    )
