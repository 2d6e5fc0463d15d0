"""
Utility modules for the Signal Intelligence Pipeline.
"""

from .datetime_utils import parse_timestamp, to_naive_utc, utc_now
from .json_utils import NumpyJSONEncoder, dump_json, dumps_json
from .logging_utils import append_jsonl, setup_logging

__all__ = [
    "utc_now",
    "parse_timestamp",
    "to_naive_utc",
    "NumpyJSONEncoder",
    "dump_json",
    "dumps_json",
    "setup_logging",
    "append_jsonl",
]
