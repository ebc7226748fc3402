"""Loading datafiles from dictionaries, JSON strings and files."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from datafile_flags.exceptions import DatafileError
from datafile_flags.models import EMPTY_DATAFILE, Datafile

__all__ = ["DatafileLoader", "DatafileSource"]

logger = logging.getLogger(__name__)

DatafileSource = Mapping[str, Any] | str | Path | Datafile


class DatafileLoader:
    """Parses datafiles into :class:`~datafile_flags.models.Datafile` objects.

    Example::

        loader = DatafileLoader()
        datafile = loader.load(Path("datafile.json"))
    """

    def load_from_dict(self, data: Mapping[str, Any]) -> Datafile:
        """Parse an already decoded datafile.

        Raises:
            DatafileError: If ``data`` does not have the datafile shape.
        """
        if not isinstance(data, Mapping):
            msg = f"Datafile must be a JSON object, got {type(data).__name__}"
            raise DatafileError(msg)
        return Datafile.from_dict(data)

    def load_from_string(self, content: str) -> Datafile:
        """Parse a JSON-encoded datafile.

        Raises:
            DatafileError: If ``content`` is not valid JSON or not a datafile.
        """
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON in datafile: {e}"
            raise DatafileError(msg) from e
        return self.load_from_dict(data)

    def load_from_file(self, path: Path | str) -> Datafile:
        """Read and parse a JSON datafile from disk.

        Raises:
            DatafileError: If the file is missing, unreadable, or invalid.
        """
        path = Path(path)
        if not path.exists():
            msg = f"Datafile not found: {path}"
            raise DatafileError(msg)

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            msg = f"Failed to read datafile {path}: {e}"
            raise DatafileError(msg) from e

        try:
            return self.load_from_string(content)
        except DatafileError as e:
            msg = f"{e} ({path})"
            raise DatafileError(msg) from e

    def load(self, source: DatafileSource | None, fallback_on_error: bool = False) -> Datafile:
        """Load a datafile from any supported source.

        Strings starting with ``{`` are treated as JSON content, any other
        string as a file path. ``None`` yields the empty datafile.

        Args:
            source: A mapping, JSON string, path, or parsed datafile.
            fallback_on_error: Return the empty datafile instead of raising.

        Returns:
            The parsed datafile.

        Raises:
            DatafileError: If loading fails and ``fallback_on_error`` is false.
        """
        try:
            if source is None:
                return self.load_from_dict(EMPTY_DATAFILE)
            if isinstance(source, Datafile):
                return source
            if isinstance(source, Path):
                return self.load_from_file(source)
            if isinstance(source, str):
                if source.lstrip().startswith("{"):
                    return self.load_from_string(source)
                return self.load_from_file(source)
            return self.load_from_dict(source)
        except DatafileError:
            if not fallback_on_error:
                raise
            logger.exception("failed to load datafile, falling back to an empty datafile")
            return self.load_from_dict(EMPTY_DATAFILE)
