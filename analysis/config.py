"""
Runtime configuration.

Values come from environment variables (the CLI loads a `.env` file first)
with defaults matching a local ChromaDB server and a per-user data directory.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"[!] Ignoring invalid {name}={raw!r}, using {default}", file=sys.stderr)
        return default


@dataclass
class AnalysisConfig:
    """Settings shared by the analyzer, the knowledge gateway and the tool runner."""

    chroma_url: str = "http://localhost:8000"
    max_file_size: int = 10 * 1024 * 1024
    default_timeout: int = 60  # seconds
    analysis_timeout: int = 300  # seconds, for slither/mythril
    data_dir: Path = field(default_factory=lambda: Path.home() / ".lestrade")
    verbose: bool = False
    enable_vector_db: bool = True
    enable_audit_trail: bool = True

    @classmethod
    def from_env(cls) -> "AnalysisConfig":
        """Build a config from LESTRADE_* and CHROMA_URL environment variables."""
        data_dir = os.environ.get("LESTRADE_DATA_DIR")
        return cls(
            chroma_url=os.environ.get("CHROMA_URL", cls.chroma_url),
            max_file_size=_env_int("LESTRADE_MAX_FILE_SIZE", cls.max_file_size),
            default_timeout=_env_int("LESTRADE_DEFAULT_TIMEOUT", cls.default_timeout),
            analysis_timeout=_env_int("LESTRADE_ANALYSIS_TIMEOUT", cls.analysis_timeout),
            data_dir=Path(data_dir).expanduser() if data_dir else Path.home() / ".lestrade",
            verbose=_env_flag("LESTRADE_VERBOSE", False),
            enable_vector_db=_env_flag("ENABLE_VECTOR_DB", True),
            enable_audit_trail=_env_flag("ENABLE_AUDIT_TRAIL", True),
        )

    @property
    def audit_db_path(self) -> Path:
        return self.data_dir / "audit.db"
