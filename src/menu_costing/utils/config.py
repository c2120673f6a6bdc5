"""
Configuration for the menu costing engine.

Resolves where the record store lives:
- MENU_COSTING_DATABASE_URL, when set, is used as is
- the test environment runs on an in-memory SQLite database
- development keeps its SQLite file in the project's data/ directory
- production keeps it under ~/.menu_costing/
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import DATABASE_FILENAME

ENVIRONMENTS = ("production", "development", "test")
DATABASE_URL_VARIABLE = "MENU_COSTING_DATABASE_URL"
ENVIRONMENT_VARIABLE = "MENU_COSTING_ENV"


class Config:
    """
    Per-environment settings of the costing engine.

    Attributes:
        environment: 'production', 'development' or 'test'
        database_path: SQLite file used when no URL override is set
    """

    def __init__(self, environment: str = "production"):
        """
        Args:
            environment: 'production', 'development' or 'test'

        Raises:
            ValueError: If the environment name is unknown
        """
        if environment not in ENVIRONMENTS:
            raise ValueError(
                f"Unknown environment '{environment}', expected one of {', '.join(ENVIRONMENTS)}"
            )
        self.environment = environment

        if environment == "development":
            data_dir = Path(__file__).resolve().parents[3] / "data"
        else:
            data_dir = Path.home() / ".menu_costing"
        self.database_path = data_dir / DATABASE_FILENAME

    def database_exists(self) -> bool:
        return self.database_path.exists()

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL of the record store; creates the data directory if needed."""
        override = os.environ.get(DATABASE_URL_VARIABLE)
        if override:
            return override
        if self.environment == "test":
            return "sqlite:///:memory:"

        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{self.database_path.as_posix()}"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def __repr__(self) -> str:
        return f"Config(environment='{self.environment}', database_path='{self.database_path}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Process-wide configuration.

    The first call fixes the environment (argument, else MENU_COSTING_ENV,
    else production). Later calls asking for another environment get the
    existing instance and a warning; the database never switches mid-run.
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = Config(
            environment or os.environ.get(ENVIRONMENT_VARIABLE, "production")
        )
    elif environment is not None and environment != _config_instance.environment:
        logging.getLogger(__name__).warning(
            "get_config(%r) ignored: configuration already created for %r",
            environment,
            _config_instance.environment,
        )
    return _config_instance


def reset_config():
    """Forget the process-wide configuration (used by tests)."""
    global _config_instance
    _config_instance = None
