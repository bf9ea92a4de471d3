import os
import tempfile
from typing import Any, Dict, List

from src.document_model import MalformedDocument, parse_document, serialize_document
from src.logging_config import get_logger

logger = get_logger("storage")


class LocaleStorage:
    """
    Working-tree locale documents: one `<locale><extension>` file per locale.
    """

    def __init__(self, locales_dir: str, extension: str = ".json", indent: int = 4):
        self.locales_dir = locales_dir
        self.extension = extension
        self.indent = indent

    def file_name(self, locale: str) -> str:
        return f"{locale}{self.extension}"

    def path_for(self, locale: str) -> str:
        return os.path.join(self.locales_dir, self.file_name(locale))

    def list_locales(self, exclude: str = "") -> List[str]:
        """Return the locale identifiers present on disk, sorted, without `exclude`."""
        if not os.path.isdir(self.locales_dir):
            logger.error("Locales directory '%s' does not exist.", self.locales_dir)
            raise FileNotFoundError(f"Locales directory '{self.locales_dir}' does not exist.")

        locales = []
        for filename in os.listdir(self.locales_dir):
            if not filename.endswith(self.extension):
                continue
            locale = filename[:-len(self.extension)]
            if locale and locale != exclude:
                locales.append(locale)
        return sorted(locales)

    def load(self, locale: str) -> Dict[str, Any]:
        """
        Load a locale document.

        Raises:
            FileNotFoundError: If the locale file does not exist.
            MalformedDocument: If the file is not a valid document.
        """
        path = self.path_for(locale)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                text = f.read()
        except UnicodeDecodeError as decode_exc:
            raise MalformedDocument(path, f"not valid UTF-8 ({decode_exc})") from decode_exc
        return parse_document(text, source=path)

    def save(self, locale: str, document: Dict[str, Any]) -> str:
        """
        Persist a locale document atomically: the new content is written to a
        temporary file in the same directory and then moved over the original.

        Returns:
            str: The path written.
        """
        path = self.path_for(locale)
        content = serialize_document(document, indent=self.indent)
        fd, temp_path = tempfile.mkstemp(prefix=f".{locale}.", suffix=".tmp", dir=self.locales_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as temp_file:
                temp_file.write(content)
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise
        logger.info("Wrote '%s'.", path)
        return path
