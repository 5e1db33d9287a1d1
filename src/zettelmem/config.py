"""Runtime settings resolved once at startup from the environment.

A ``.env`` file (current directory, or ``$ZETTEL_HOME/.env``) is loaded first
with python-dotenv; real environment variables always win over it.
"""

import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger("zettelmem.config")

DEFAULT_HOME = Path.home() / ".zettelmem"
DB_FILENAME = "notes-db.sqlite"
DEFAULT_MEM0_BASE_URL = "https://api.mem0.ai"
DEFAULT_USER_ID = "zettelkasten_mcp"


def _env_int(name: str, default: int, min_val: int = 1, max_val: int = 10_000_000) -> int:
    """Read an int env var, falling back to default on junk and clamping the rest."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %d", name, raw, default)
        return default
    return max(min_val, min(value, max_val))


def _env_list(name: str, default: List[str]) -> List[str]:
    """Read a comma-separated env var; blank entries are dropped."""
    items = [item.strip() for item in os.environ.get(name, "").split(",") if item.strip()]
    return items or list(default)


def _expand(path: str) -> Path:
    return Path(path).expanduser()


@dataclass
class Settings:
    """Resolved configuration consumed by the service and the servers."""

    home: Path = DEFAULT_HOME
    db_path: Optional[Path] = None
    mem0_api_key: Optional[str] = field(default=None, repr=False)
    mem0_base_url: str = DEFAULT_MEM0_BASE_URL
    user_id: str = DEFAULT_USER_ID
    remote_timeout_ms: int = 5000
    flush_interval_ms: int = 10000
    search_limit: int = 10
    max_content_size: int = 1_000_000
    rate_limit_global: int = 300
    rate_limit_write: int = 60
    http_host: str = "127.0.0.1"
    http_port: int = 8080
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        self.home = Path(self.home)
        if self.db_path is None:
            self.db_path = self.home / DB_FILENAME
        else:
            self.db_path = Path(self.db_path)

    @property
    def remote_enabled(self) -> bool:
        return bool(self.mem0_api_key)

    def ensure_dirs(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)

    def asdict(self) -> Dict[str, Any]:
        """Settings as a plain dict with the API key masked, for logs and status."""
        data = asdict(self)
        data["home"] = str(self.home)
        data["db_path"] = str(self.db_path)
        data["mem0_api_key"] = "***" if self.mem0_api_key else None
        return data


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build Settings from ``.env`` plus environment variables."""
    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(find_dotenv(usecwd=True), override=False)
        home_env = Path(os.environ.get("ZETTEL_HOME", str(DEFAULT_HOME))).expanduser() / ".env"
        if home_env.exists():
            load_dotenv(home_env, override=False)

    home = _expand(os.environ.get("ZETTEL_HOME", str(DEFAULT_HOME)))
    db_env = os.environ.get("ZETTEL_DB_PATH")

    return Settings(
        home=home,
        db_path=_expand(db_env) if db_env else None,
        mem0_api_key=os.environ.get("MEM0_API_KEY") or None,
        mem0_base_url=os.environ.get("MEM0_BASE_URL", DEFAULT_MEM0_BASE_URL).rstrip("/"),
        user_id=os.environ.get("ZETTEL_USER_ID", DEFAULT_USER_ID),
        remote_timeout_ms=_env_int("ZETTEL_REMOTE_TIMEOUT_MS", 5000, max_val=600_000),
        flush_interval_ms=_env_int("ZETTEL_FLUSH_INTERVAL_MS", 10000, min_val=100, max_val=86_400_000),
        search_limit=_env_int("ZETTEL_SEARCH_LIMIT", 10, max_val=1000),
        max_content_size=_env_int("ZETTEL_MAX_CONTENT_SIZE", 1_000_000),
        rate_limit_global=_env_int("ZETTEL_RATE_LIMIT_GLOBAL", 300, min_val=0),
        rate_limit_write=_env_int("ZETTEL_RATE_LIMIT_WRITE", 60, min_val=0),
        http_host=os.environ.get("ZETTEL_HTTP_HOST", "127.0.0.1"),
        http_port=_env_int("ZETTEL_HTTP_PORT", 8080, max_val=65535),
        cors_origins=_env_list("ZETTEL_CORS_ORIGINS", ["*"]),
        log_level=os.environ.get("ZETTEL_LOG_LEVEL", "WARNING").upper(),
    )


def configure_logging(level: str = "WARNING") -> None:
    """Log to stderr so the stdio MCP transport keeps stdout to itself."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.WARNING),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
