"""
JSON Reporter Module
====================

Exports a resource index to JSON for downstream tooling.

Classes
-------
JSONReporter
    Reporter class for JSON export.

Example
-------
>>> from tfstate_index.reporters import JSONReporter
>>>
>>> reporter = JSONReporter(output_path="index.json")
>>> filepath = reporter.report(load_result)
>>>
>>> # Or get as string
>>> json_str = reporter.to_string(load_result)

Output Structure
----------------
::

    {
      "metadata": {
        "resource_count": 42,
        "files_loaded": 3,
        "files_skipped": 1,
        "collisions": 0,
        "load_time": "2024-01-15T10:30:00"
      },
      "summary_by_state_file": {
        "arn:aws:s3:::tf-state/network.tfstate": 30,
        "arn:aws:s3:::tf-state/app.tfstate": 12
      },
      "skipped_files": {"cache/tf-state/broken.tfstate": "..."},
      "resources": {"vpc-0a1b2c3d": "arn:aws:s3:::tf-state/network.tfstate"}
    }

See Also
--------
CLIReporter : For terminal display.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from tfstate_index.core.exceptions import TfStateIndexError
from tfstate_index.state.index import LoadResult

# Module logger
logger = logging.getLogger(__name__)


class JSONReporter:
    """
    Reporter for exporting a load result to JSON.

    Parameters
    ----------
    output_path : str, optional
        Path for the output file. If not provided, a timestamped
        filename in the current directory is used.
    indent : int, default=2
        JSON indentation level. None for compact output.
    """

    def __init__(
        self,
        output_path: Optional[str] = None,
        indent: Optional[int] = 2,
    ) -> None:
        self.output_path = output_path
        self.indent = indent
        logger.debug("Initialized JSONReporter (output_path=%s)", output_path)

    def _get_output_path(self) -> Path:
        if self.output_path:
            return Path(self.output_path)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return Path(f"tfstate_index_{timestamp}.json")

    def report(self, result: LoadResult) -> str:
        """
        Write the load result to a JSON file.

        Returns
        -------
        str
            Path to the created JSON file.

        Raises
        ------
        TfStateIndexError
            If the file cannot be written.

        Example
        -------
        >>> reporter = JSONReporter()
        >>> filepath = reporter.report(load_result)
        >>> print(f"Saved to: {filepath}")
        """
        output_path = self._get_output_path()
        logger.info("Exporting %d resources to %s", len(result.index), output_path)

        try:
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(result), f, indent=self.indent, default=str)
        except OSError as e:
            raise TfStateIndexError(
                f"Unable to write report to {output_path}: {e}",
                details={"path": str(output_path)},
            ) from e

        logger.info("JSON export complete: %s", output_path)
        return str(output_path)

    def to_string(self, result: LoadResult) -> str:
        """Convert the load result to a JSON string without writing a file."""
        return json.dumps(self.to_dict(result), indent=self.indent, default=str)

    def to_dict(self, result: LoadResult) -> Dict[str, Any]:
        """
        Convert the load result to the report structure.

        Example
        -------
        >>> data = JSONReporter().to_dict(load_result)
        >>> data["metadata"]["resource_count"]
        42
        """
        return {
            "metadata": {
                "resource_count": len(result.index),
                "files_loaded": len(result.files_loaded),
                "files_skipped": result.skipped_count,
                "collisions": result.collisions,
                "load_time": result.load_time.isoformat(),
            },
            "summary_by_state_file": result.index.owners(),
            "skipped_files": dict(result.skipped_files),
            "resources": result.index.to_dict(),
        }

    def __repr__(self) -> str:
        return f"JSONReporter(output_path={self.output_path!r}, indent={self.indent})"
