import math
from typing import Any, List, Optional

import httpx


def safe_float(x: Any) -> Optional[float]:
    try:
        if x is None or (isinstance(x, float) and math.isnan(x)):
            return None
        return float(x)
    except (TypeError, ValueError):
        return None


def safe_json_list(resp: httpx.Response) -> Optional[List[Any]]:
    """Decoded body when it is a JSON array, else None (bad JSON or wrong shape)."""
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, list) else None
