"""
On-disk configuration store for Perplexity CLI.

The config file is a single JSON document holding the API key and the most
recent queries::

    {
      "apiKey": "pplx-...",
      "history": [
        {"question": "...", "model": "sonar", "timestamp": 1718000000000}
      ]
    }

Everything that reads or writes it receives a ``ConfigStore`` handle, so an
``InMemoryConfigStore`` can stand in for the file in tests.
"""

import copy
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import commentjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import ConfigReadError, ConfigWriteError, PerplexityCliError

logger = logging.getLogger(__name__)


def mask_api_key(api_key: str) -> str:
    """Show only the first and last four characters of a key.

    Keys shorter than eight characters are masked entirely.
    """
    if len(api_key) < 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}{'*' * (len(api_key) - 8)}{api_key[-4:]}"


class QueryRecord(BaseModel):
    """One past query, as stored in the history list."""

    model_config = ConfigDict(frozen=True)

    question: str
    model: str
    timestamp: int = Field(description="Epoch milliseconds")


class Configuration(BaseModel):
    """The whole config document. Unknown keys are kept as-is."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    api_key: Optional[str] = Field(default=None, alias="apiKey")
    history: List[QueryRecord] = Field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the JSON document layout (camelCase, no nulls)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ConfigStore(ABC):
    """Load/save handle for the persisted configuration."""

    def __init__(self) -> None:
        self.last_error: Optional[PerplexityCliError] = None

    @abstractmethod
    def load(self) -> Configuration:
        """Return the stored configuration, or an empty one. Never raises."""

    @abstractmethod
    def save(self, config: Configuration) -> bool:
        """Persist the full configuration. Returns False on failure."""


class JsonConfigStore(ConfigStore):
    """Config store backed by a JSON file."""

    def __init__(self, path: Path):
        """Initialize the store and make sure its directory exists.

        Args:
            path: Location of the JSON config file
        """
        super().__init__()
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.last_error = ConfigWriteError(
                f"Error creating config directory {self.path.parent}: {e}", original_error=e
            )
            logger.error(self.last_error.message)

    def load(self) -> Configuration:
        try:
            if not self.path.exists():
                logger.debug(f"Config file not found: {self.path}")
                return Configuration()

            with open(self.path, "r", encoding="utf-8") as f:
                content = f.read()

            document = commentjson.loads(content)
            config = Configuration.model_validate(document)
            logger.debug(f"Loaded config from {self.path}")
            return config

        except ValidationError as e:
            self.last_error = ConfigReadError(f"Invalid config document in {self.path}: {e}", original_error=e)
        except Exception as e:
            self.last_error = ConfigReadError(f"Error reading config file {self.path}: {e}", original_error=e)

        logger.error(self.last_error.message)
        return Configuration()

    def save(self, config: Configuration) -> bool:
        try:
            text = commentjson.dumps(config.to_document(), indent=2, ensure_ascii=False)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(text)

            logger.debug(f"Saved config to {self.path}")
            return True

        except (OSError, TypeError, ValueError) as e:
            self.last_error = ConfigWriteError(f"Error saving config file {self.path}: {e}", original_error=e)
            logger.error(self.last_error.message)
            return False


class InMemoryConfigStore(ConfigStore):
    """Config store that keeps the document in memory."""

    def __init__(self, document: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.document: Dict[str, Any] = copy.deepcopy(document) if document else {}
        self.save_count = 0

    def load(self) -> Configuration:
        try:
            return Configuration.model_validate(copy.deepcopy(self.document))
        except ValidationError as e:
            self.last_error = ConfigReadError(f"Invalid in-memory config document: {e}", original_error=e)
            logger.error(self.last_error.message)
            return Configuration()

    def save(self, config: Configuration) -> bool:
        self.document = config.to_document()
        self.save_count += 1
        return True
