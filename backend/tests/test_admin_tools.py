"""
Tests for the admin tool handlers and UI payload builders.
"""

import asyncio
from unittest.mock import patch

import httpx
import pytest

from errors import DependencyUnavailableError, NotFoundError, ValidationError
from tools.admin_tools import AdminToolHandlers, compute_stat
from tools.cards import action_card, chart_payload, navigation_card, resolve_admin_path


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def handlers(store):
    return AdminToolHandlers(store)


class TestUserTools:
    """Tests for user lookup tools."""

    def test_users_count(self, handlers):
        """Count covers every user document."""
        assert run(handlers.get_users_count({})) == {"totalUsers": 3}

    def test_get_user(self, handlers):
        """Existing user is returned."""
        assert run(handlers.get_user({"userId": "u1"}))["firstName"] == "Ada"

    def test_get_user_missing(self, handlers):
        """Unknown user raises NotFoundError."""
        with pytest.raises(NotFoundError):
            run(handlers.get_user({"userId": "ghost"}))

    def test_get_user_requires_id(self, handlers):
        """Missing userId is a validation error."""
        with pytest.raises(ValidationError):
            run(handlers.get_user({}))

    def test_list_users_counts(self, handlers):
        """Listing includes totals by membership kind."""
        result = run(handlers.list_users({}))
        assert result["totalUsers"] == 3
        assert result["totalLegacyMembers"] == 1

    def test_action_history_limit_clamped(self, handlers):
        """Numeric-string limit is accepted and applied."""
        result = run(handlers.get_user_action_history({"userId": "u1", "limit": "2"}))
        assert result["count"] == 2

    def test_action_history_bad_limit(self, handlers):
        """Non-numeric limit is a validation error."""
        with pytest.raises(ValidationError):
            run(handlers.get_user_action_history({"userId": "u1", "limit": "lots"}))

    def test_missing_store(self):
        """Without a data store, data tools report the dependency as unavailable."""
        with pytest.raises(DependencyUnavailableError):
            run(AdminToolHandlers(None).get_users_count({}))


class TestAccountActionCards:
    """prepare_* tools return confirmation cards and never change data."""

    def test_add_loyalty_points_card(self, handlers, store):
        """Points card carries the action payload; stored points are unchanged."""
        card = run(handlers.prepare_add_loyalty_points({"userId": "u1", "points": 50, "reason": "event"}))

        assert card["type"] == "action_card"
        assert card["data"]["currentPoints"] == 120
        assert card["actions"][0]["actionType"] == "add_loyalty_points"
        assert card["actions"][0]["actionData"] == {"userId": "u1", "points": 50, "reason": "event"}
        assert store.users["u1"]["loyaltyPoints"] == 120

    def test_zero_points_rejected(self, handlers):
        """Zero points is a validation error."""
        with pytest.raises(ValidationError):
            run(handlers.prepare_add_loyalty_points({"userId": "u1", "points": 0, "reason": "x"}))

    def test_block_card(self, handlers, store):
        """Block card is a danger card with a confirm message; user stays unblocked."""
        card = run(handlers.prepare_toggle_account_blocked({"userId": "u2", "isBlocked": True, "reason": "fraud"}))

        assert card["variant"] == "danger"
        assert card["actions"][0]["confirmMessage"]
        assert store.users["u2"]["isAccountBlocked"] is False

    def test_block_requires_boolean(self, handlers):
        """isBlocked must be a real boolean."""
        with pytest.raises(ValidationError):
            run(handlers.prepare_toggle_account_blocked({"userId": "u2", "isBlocked": "yes", "reason": "x"}))

    def test_update_card_shows_current_values(self, handlers):
        """Update card shows current and proposed values side by side."""
        card = run(handlers.prepare_update_user({"userId": "u1", "updates": {"email": "new@example.org"}}))

        assert card["data"]["current"] == {"email": "ada@example.org"}
        assert card["data"]["proposed"] == {"email": "new@example.org"}
        assert card["actions"][1]["actionData"]["path"] == "/admin/users/u1"


class TestContributionAndPlanTools:
    """Tests for contribution, plan and chart tools."""

    def test_recent_contributions_default_limit(self, handlers):
        """Default limit returns all three fixture contributions."""
        assert len(run(handlers.get_recent_contributions({}))) == 3

    def test_plan_by_id(self, handlers):
        """Plan lookup by id."""
        assert run(handlers.get_membership_plan_by_id({"planId": "annual"}))["price"] == 50

    def test_plan_missing(self, handlers):
        """Unknown plan raises NotFoundError."""
        with pytest.raises(NotFoundError):
            run(handlers.get_membership_plan_by_id({"planId": "gold"}))

    def test_contribution_chart_takes_last_months(self, handlers):
        """Evolution chart keeps only the most recent months."""
        chart = run(handlers.create_contribution_chart({"months": 3}))

        assert chart["chartType"] == "chart"
        assert chart["type"] == "line"
        assert [row["month"] for row in chart["data"]] == ["2026-07", "2026-08", "2026-09"]
        assert chart["xKey"] == "month"

    def test_item_pie_chart(self, handlers):
        """Pie chart uses name/value keys."""
        chart = run(handlers.create_item_stats_chart({"chartType": "pie"}))
        assert chart["nameKey"] == "item"
        assert chart["valueKey"] == "amount"


class TestCustomStats:
    """Tests for calculate_custom_stats and compute_stat."""

    def test_average_completed_contributions(self, handlers):
        """Pending contributions are excluded."""
        result = run(handlers.calculate_custom_stats({"operation": "average", "dataType": "contributions"}))
        assert result["result"] == 100.0
        assert result["sampleSize"] == 2

    def test_sum_loyalty_points(self, handlers):
        """Loyalty points sum across users."""
        result = run(handlers.calculate_custom_stats({"operation": "sum", "dataType": "loyalty_points"}))
        assert result["result"] == 150.0

    def test_unknown_operation(self, handlers):
        """Unsupported operation is a validation error."""
        with pytest.raises(ValidationError):
            run(handlers.calculate_custom_stats({"operation": "mode", "dataType": "users"}))

    def test_unknown_data_type(self, handlers):
        """Unsupported data type is a validation error."""
        with pytest.raises(ValidationError):
            run(handlers.calculate_custom_stats({"operation": "sum", "dataType": "events"}))

    @pytest.mark.parametrize("operation,expected", [
        ("sum", 10.0),
        ("average", 2.5),
        ("min", 1.0),
        ("max", 4.0),
        ("count", 4),
        ("median", 2.5),
    ])
    def test_compute_stat(self, operation, expected):
        """Each supported operation over a fixed sample."""
        assert compute_stat(operation, [1.0, 2.0, 3.0, 4.0]) == expected

    def test_compute_stat_empty(self):
        """Empty sample gives None, except count which gives 0."""
        assert compute_stat("average", []) is None
        assert compute_stat("count", []) == 0


class TestNavigation:
    """Tests for navigate_to and admin path resolution."""

    def test_navigate_to_detail_page(self, handlers):
        """Detail page resolves with the record id."""
        card = run(handlers.navigate_to({"page": "user", "id": "u1"}))
        assert card["type"] == "navigation_card"
        assert card["path"] == "/admin/users/u1"
        assert card["buttonLabel"] == "Open"

    def test_detail_page_requires_id(self):
        """Detail pages need an id."""
        with pytest.raises(ValidationError):
            resolve_admin_path("user")

    def test_unknown_page(self):
        """Unknown page key is rejected."""
        with pytest.raises(ValidationError):
            resolve_admin_path("secret_area")


class TestCards:
    """Tests for chart, navigation and action card builders."""

    def test_chart_infers_keys(self):
        """Axis keys are inferred from the first row."""
        chart = chart_payload("bar", "T", [{"month": "2026-01", "amount": 5}])
        assert chart["xKey"] == "month"
        assert chart["yKey"] == "amount"

    def test_chart_rejects_unknown_type(self):
        """Unknown chart type is rejected."""
        with pytest.raises(ValidationError):
            chart_payload("radar", "T", [])

    def test_chart_rejects_bad_rows(self):
        """Rows must be mappings."""
        with pytest.raises(ValidationError):
            chart_payload("line", "T", ["not a row"])

    def test_navigation_card_icon_optional(self):
        """Icon is only present when given."""
        assert "icon" not in navigation_card("T", "D", "/admin")
        assert navigation_card("T", "D", "/admin", icon="users")["icon"] == "users"

    def test_action_card_defaults(self):
        """Action card defaults to the info variant."""
        card = action_card("T", actions=[])
        assert card["type"] == "action_card"
        assert card["variant"] == "info"


class TestWebSearch:
    """DuckDuckGo instant answers over httpx."""

    def _patched_client(self, handler):
        real_client = httpx.AsyncClient
        return patch(
            "tools.admin_tools.httpx.AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )

    def test_search_summarizes_response(self, handlers):
        """Abstract and related topics are summarized; nameless topics are skipped."""
        seen = {}

        def handler(request):
            seen["q"] = request.url.params["q"]
            return httpx.Response(200, json={
                "AbstractText": "A membership organization is...",
                "AbstractSource": "Wikipedia",
                "AbstractURL": "https://en.wikipedia.org/wiki/Membership",
                "RelatedTopics": [{"Text": "Club", "FirstURL": "https://duckduckgo.com/Club"}, {"Name": "group"}],
            })

        with self._patched_client(handler):
            result = run(handlers.web_search({"query": "membership organization"}))

        assert seen["q"] == "membership organization"
        assert result["source"] == "Wikipedia"
        assert result["relatedTopics"] == [{"text": "Club", "url": "https://duckduckgo.com/Club"}]

    def test_search_http_error(self, handlers):
        """HTTP failure reports the search dependency as unavailable."""
        with self._patched_client(lambda request: httpx.Response(500)):
            with pytest.raises(DependencyUnavailableError):
                run(handlers.web_search({"query": "x"}))
