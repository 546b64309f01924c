from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

TieBreakPolicy = Literal["most_recent", "oldest", "lowest_id"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="NOTEGRAPH_")

    # Workspace settings
    notes_folder: Path = Path("data/notes")
    local_index_path: str = "data/graph_index.json"

    # Indexing settings
    tie_break_policy: TieBreakPolicy = "most_recent"
    context_chars: int = 80
    auto_reresolve: bool = True
    strict_integrity_checks: bool = False

    # Similarity weights, must add up to 1.0
    textual_weight: float = 0.4
    tag_weight: float = 0.3
    link_weight: float = 0.2
    structural_weight: float = 0.1

    # Discovery settings
    similar_threshold: float = 0.3
    max_recommendations: int = 10
    cluster_threshold: float = 0.2
    min_cluster_size: int = 2
    cluster_topic_count: int = 5
    gap_threshold: float = 0.5
    key_term_count: int = 10
    serendipity_seed: int = 7
    max_path_depth: int = 4
    max_paths: int = 50
    worker_threads: int = 2
    analysis_timeout: float = 30.0  # seconds before an HTTP discovery query is cancelled

    log_level: str = "INFO"  # Can be DEBUG, INFO, WARNING, ERROR, CRITICAL


settings = Settings()
