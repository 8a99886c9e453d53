"""Page-number pagination for tracker listings.

The tracker reports the next page number with every page (0 when there is
none), so the state machine just follows it. ``max_pages`` bounds runaway
listings.

Typical API pattern:
    GET /repos/PEDSnet/CHOP/issues?page=1&per_page=100
    -> Link: <...?page=2&per_page=100>; rel="next"
    GET /repos/PEDSnet/CHOP/issues?page=2&per_page=100
    -> (no next link)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

__all__ = ["PaginationConfig", "PagePaginationState"]


@dataclass
class PaginationConfig:
    page_size: int = 100
    max_pages: Optional[int] = None


class PagePaginationState:
    """Tracks progress through a paginated listing."""

    def __init__(self, config: Optional[PaginationConfig] = None) -> None:
        self.config = config or PaginationConfig()
        self.page: Optional[int] = None
        self.pages_fetched = 0
        self._done = False
        self._max_pages_reached = False

    def should_fetch_more(self) -> bool:
        if self._done:
            return False
        if self.config.max_pages and self.pages_fetched >= self.config.max_pages:
            self._max_pages_reached = True
            return False
        return True

    def build_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"per_page": self.config.page_size}
        if self.page:
            params["page"] = self.page
        return params

    def on_response(self, next_page: int) -> bool:
        """Record a fetched page; return True if another page follows."""
        self.pages_fetched += 1
        if not next_page:
            self._done = True
            return False
        self.page = next_page
        return True

    def describe(self) -> str:
        return f"page {self.page or 1}"

    @property
    def max_pages_limit_hit(self) -> bool:
        return self._max_pages_reached
