"""
Report Generators
=================

Output formatters for pull and index results.

Available Reporters
-------------------
CLIReporter
    Rich terminal output with summary tables.
JSONReporter
    JSON export for downstream tooling.

Example
-------
>>> from tfstate_index.reporters import CLIReporter, JSONReporter
>>>
>>> CLIReporter().report_load(load_result)
>>> JSONReporter(output_path="index.json").report(load_result)
"""

from tfstate_index.reporters.cli_reporter import CLIReporter
from tfstate_index.reporters.json_reporter import JSONReporter

__all__ = [
    "CLIReporter",
    "JSONReporter",
]
