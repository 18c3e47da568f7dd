import json
import logging
import threading
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from ..config import settings
from ..models.schemas import KeywordDictionary

logger = logging.getLogger(settings.SERVICE_NAME + ".loader")


class DictionaryLoadError(Exception):
    """Raised when the keyword dictionary file cannot be read or is invalid."""


def load_keyword_dictionary(path: Union[str, Path]) -> KeywordDictionary:
    """
    Load and validate a keyword dictionary file.

    Args:
        path: Path to a JSON file with `categories` and `scoring` sections

    Returns:
        Immutable KeywordDictionary

    Raises:
        DictionaryLoadError: if the file is missing, is not valid JSON,
            or does not match the dictionary schema
    """
    path = Path(path)
    if not path.exists():
        logger.error(f"Keyword dictionary file not found: {path}")
        raise DictionaryLoadError(f"Keyword dictionary file not found: {path}")

    logger.info(f"Loading keyword dictionary from {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse keyword dictionary file: {e}", exc_info=True)
        raise DictionaryLoadError(f"Invalid JSON in {path}: {e}") from e

    try:
        dictionary = KeywordDictionary.model_validate(raw_data)
    except ValidationError as e:
        logger.error(f"Keyword dictionary failed validation: {e}")
        raise DictionaryLoadError(f"Invalid keyword dictionary in {path}: {e}") from e

    empty = [profile.name for profile in dictionary.categories if profile.keyword_count == 0]
    if empty:
        logger.warning(f"Categories without keywords will never be assigned: {empty}")

    logger.info(
        f"Keyword dictionary loaded successfully: "
        f"{len(dictionary.categories)} categories, "
        f"{sum(p.keyword_count for p in dictionary.categories)} keywords"
    )
    return dictionary


class DictionaryLoader:
    """
    Loads the keyword dictionary configured in settings once and hands out
    the same immutable instance for the lifetime of the process.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.keywords_file_path = Path(path) if path else settings.get_absolute_keywords_path()
        self._dictionary: Optional[KeywordDictionary] = None
        self.lock = threading.Lock()

    def get_dictionary(self) -> KeywordDictionary:
        with self.lock:
            if self._dictionary is None:
                self._dictionary = load_keyword_dictionary(self.keywords_file_path)
            return self._dictionary

    @property
    def is_loaded(self) -> bool:
        return self._dictionary is not None


# Create a singleton instance of the DictionaryLoader
_loader_instance = None


def get_dictionary_loader() -> DictionaryLoader:
    """
    Get the singleton instance of DictionaryLoader.
    """
    global _loader_instance
    if _loader_instance is None:
        _loader_instance = DictionaryLoader()
    return _loader_instance


def get_keyword_dictionary() -> KeywordDictionary:
    """Shortcut for the process-wide dictionary."""
    return get_dictionary_loader().get_dictionary()


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)

    dictionary = get_keyword_dictionary()
    print(f"Loaded {len(dictionary.categories)} categories:")
    for profile in dictionary.categories:
        print(f"  - {profile.name}: {profile.keyword_count} keywords, weight {profile.weight}")
    print(f"\nScoring: {dictionary.scoring.model_dump()}")
