"""
Source file parsers.
"""

from parsers.tabular_reader import (
    read_source,
    detect_delimiter,
    parse_delimited_line,
    cell_to_text,
)

__all__ = [
    "read_source",
    "detect_delimiter",
    "parse_delimited_line",
    "cell_to_text",
]
