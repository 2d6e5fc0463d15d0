"""
JSON utilities for handling numpy and other special types.
"""

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import numpy as np


class NumpyJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy types, datetimes, enums and dataclasses."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.bool_):
            return bool(obj)

        if isinstance(obj, datetime):
            return obj.isoformat()

        if isinstance(obj, Enum):
            return obj.value

        # Records with their own serialization win over a plain asdict
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)

        if isinstance(obj, (set, frozenset)):
            return sorted(obj)

        return super().default(obj)


def dump_json(obj: Any, fp, **kwargs) -> None:
    """Wrapper for json.dump that uses NumpyJSONEncoder by default."""
    kwargs.setdefault('cls', NumpyJSONEncoder)
    kwargs.setdefault('indent', 2)
    kwargs.setdefault('ensure_ascii', False)
    json.dump(obj, fp, **kwargs)


def dumps_json(obj: Any, **kwargs) -> str:
    """Wrapper for json.dumps that uses NumpyJSONEncoder by default."""
    kwargs.setdefault('cls', NumpyJSONEncoder)
    kwargs.setdefault('indent', 2)
    kwargs.setdefault('ensure_ascii', False)
    return json.dumps(obj, **kwargs)
