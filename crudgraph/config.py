"""
Runtime configuration for crudgraph.

Settings are read from the process environment, optionally seeded from a
`.env` file through python-dotenv. Every variable is prefixed `CRUDGRAPH_`:

    CRUDGRAPH_DATABASE_URL        memory:// or any SQLAlchemy URL
    CRUDGRAPH_LOG_LEVEL           DEBUG, INFO, WARNING, ...
    CRUDGRAPH_TOTAL_COUNT_HEADER  header carrying the unlimited match count
    CRUDGRAPH_EXPOSE_HEADERS_HEADER
    CRUDGRAPH_SQL_ECHO            "true" to echo SQL statements
"""
import logging
import os
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "CRUDGRAPH_"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class CrudGraphSettings(BaseModel):
    """Settings shared by the stores, the executor and the services."""
    database_url: str = Field(
        default="memory://",
        description="Where documents live: memory:// or a SQLAlchemy database URL"
    )
    log_level: str = Field(default="INFO", description="Level for the crudgraph loggers")
    total_count_header: str = Field(
        default="X-total-count",
        description="Response header reporting the number of matches without skip/limit"
    )
    expose_headers_header: str = Field(
        default="Access-Control-Expose-Headers",
        description="Response header listing headers readable by browsers"
    )
    sql_echo: bool = Field(default=False, description="Echo SQL statements issued by the SQL store")

    model_config = ConfigDict(frozen=True)

    @property
    def uses_memory_store(self) -> bool:
        return self.database_url.startswith("memory://")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "CrudGraphSettings":
        """Build settings from CRUDGRAPH_* variables, loading `env_file` first if given."""
        load_dotenv(env_file)
        defaults = cls()
        return cls(
            database_url=os.getenv(f"{ENV_PREFIX}DATABASE_URL", defaults.database_url),
            log_level=os.getenv(f"{ENV_PREFIX}LOG_LEVEL", defaults.log_level).upper(),
            total_count_header=os.getenv(f"{ENV_PREFIX}TOTAL_COUNT_HEADER", defaults.total_count_header),
            expose_headers_header=os.getenv(f"{ENV_PREFIX}EXPOSE_HEADERS_HEADER", defaults.expose_headers_header),
            sql_echo=os.getenv(f"{ENV_PREFIX}SQL_ECHO", "false").lower() in ("1", "true", "yes"),
        )


LOGGER_NAMES = (
    "EntityRegistry",
    "ConditionCaster",
    "RelationPlanner",
    "QueryExecutor",
    "DocumentPopulator",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
    "CrudService",
)


def configure_logging(
    level: Optional[Union[int, str]] = None,
    settings: Optional[CrudGraphSettings] = None,
) -> None:
    """
    Attach a stream handler to every crudgraph logger and set its level.

    Without an explicit `level` the level comes from `settings.log_level`,
    reading the environment when no settings are given.
    """
    if level is None:
        level = (settings or CrudGraphSettings.from_env()).log_level
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        if not any(getattr(h, "_crudgraph", False) for h in logger.handlers):
            handler._crudgraph = True  # type: ignore[attr-defined]
            logger.addHandler(handler)
        logger.setLevel(level)
