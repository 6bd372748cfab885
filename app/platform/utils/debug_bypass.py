from typing import Mapping

DEBUG_BYPASS_HEADER = "x-debug-bypass"


def is_debug_bypass(headers: Mapping[str, str], settings) -> bool:
    """The client header only counts when the server opted in via ALLOW_DEBUG_BYPASS."""
    if not settings.ALLOW_DEBUG_BYPASS:
        return False
    return headers.get(DEBUG_BYPASS_HEADER, "").lower() == "true"
