"""Unit tests for the page-number pagination state."""

from dqa.lib.pagination import PagePaginationState, PaginationConfig


class TestPagePaginationState:
    """Tests for PagePaginationState."""

    def test_first_request_has_no_page(self):
        """Should let the tracker default to the first page."""
        state = PagePaginationState(PaginationConfig(page_size=50))

        assert state.should_fetch_more() is True
        assert state.build_params() == {"per_page": 50}
        assert state.describe() == "page 1"

    def test_follows_next_page(self):
        """Should request the page the tracker reported."""
        state = PagePaginationState()

        assert state.on_response(2) is True
        assert state.build_params() == {"per_page": 100, "page": 2}
        assert state.describe() == "page 2"

    def test_stops_when_no_next_page(self):
        """Should stop after a page without a successor."""
        state = PagePaginationState()

        state.on_response(2)
        assert state.on_response(0) is False
        assert state.should_fetch_more() is False
        assert state.pages_fetched == 2
        assert state.max_pages_limit_hit is False

    def test_max_pages(self):
        """Should stop and flag the limit when max_pages is reached."""
        state = PagePaginationState(PaginationConfig(max_pages=1))

        state.on_response(2)

        assert state.should_fetch_more() is False
        assert state.max_pages_limit_hit is True
