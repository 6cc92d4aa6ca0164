"""
Flat directory of uploaded zip templates, addressed by file name.

Availability is always checked against disk: files can be added or removed
outside the database, so catalog rows are cross-referenced with
:meth:`TemplateStore.list_available`.
"""
from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path

from app.sitehost.errors import InvalidInput

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = ".zip"


class TemplateExtractionError(RuntimeError):
    pass


def check_file_name(file_name: str) -> str:
    """Reject anything that is not a plain file name inside the store."""
    name = (file_name or "").strip()
    if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidInput(
            "Invalid template file name",
            errors=[{"field": "scriptName", "message": "Template file name must be a plain file name."}],
        )
    return name


class TemplateStore:
    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def path_for(self, file_name: str) -> Path:
        return self.directory / check_file_name(file_name)

    def list_available(self) -> list[str]:
        try:
            entries = list(self.directory.iterdir())
        except FileNotFoundError:
            return []
        return sorted(e.name for e in entries if e.is_file() and e.name.endswith(ARCHIVE_EXTENSION))

    def upload(self, file_name: str, data: bytes) -> Path:
        p = self.path_for(file_name)
        self.directory.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
        logger.info("Uploaded template archive %s (%d bytes)", p.name, len(data))
        return p

    def exists(self, file_name: str) -> bool:
        return self.path_for(file_name).is_file()

    def delete(self, file_name: str) -> bool:
        """Remove the archive. Returns False when it was already gone."""
        p = self.path_for(file_name)
        try:
            p.unlink()
        except FileNotFoundError:
            logger.info("Template archive already absent: %s", p.name)
            return False
        logger.info("Deleted template archive %s", p.name)
        return True

    def extract_to(self, file_name: str, destination: Path) -> list[str]:
        """
        Decompress an archive into ``destination``; returns the member names written.
        Members that would land outside ``destination`` abort the extraction.
        """
        src = self.path_for(file_name)
        dest = Path(destination).resolve()
        try:
            with zipfile.ZipFile(src) as zf:
                members = zf.infolist()
                for m in members:
                    target = (dest / m.filename).resolve()
                    if os.path.isabs(m.filename) or not target.is_relative_to(dest):
                        raise TemplateExtractionError(f"Archive member escapes destination: {m.filename!r}")
                zf.extractall(dest)
        except zipfile.BadZipFile as e:
            raise TemplateExtractionError(f"{src.name} is not a valid zip archive: {e}") from e
        except OSError as e:
            raise TemplateExtractionError(f"Failed to extract {src.name}: {e}") from e
        logger.info("Extracted template %s into %s (%d members)", src.name, dest, len(members))
        return [m.filename for m in members]


def template_store_from_config(config: dict) -> TemplateStore:
    directory = config.get("TEMPLATES_DIR") or os.path.join(os.getcwd(), "allscripts")
    return TemplateStore(directory)
