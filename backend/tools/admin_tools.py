"""
Admin panel tools.

Handlers for every tool the assistant can call. Data lookups delegate to
an AdminDataStore (the document store behind the admin panel, supplied by
the host application); chart shaping, navigation hints and confirmation
cards are computed here. Account changes are never applied by the
assistant: the prepare_* tools return an action card the admin confirms
in the panel.
"""

import logging
import statistics
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from errors import DependencyUnavailableError, NotFoundError, ValidationError
from .cards import (
    ADMIN_PAGES,
    CHART_TYPES,
    action,
    action_card,
    chart_payload,
    navigation_card,
    resolve_admin_path,
)
from .registry import ToolCatalog, ToolCategory, ToolDescriptor

logger = logging.getLogger(__name__)

# Result size caps, large collections are truncated before reaching the model
MAX_LISTED_USERS = 100
MAX_LISTED_CONTRIBUTIONS = 100
DEFAULT_ACTION_HISTORY = 50
DEFAULT_RECENT_CONTRIBUTIONS = 10
DEFAULT_CHART_MONTHS = 6

STAT_OPERATIONS = ("sum", "average", "min", "max", "count", "median")
STAT_DATA_TYPES = ("contributions", "users", "loyalty_points")


class AdminDataStore(ABC):
    """Read access to the admin panel's document store."""

    @abstractmethod
    async def count_users(self) -> int: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def list_users(self) -> Dict[str, List[Dict[str, Any]]]:
        """``{"users": [...], "legacyMembers": [...]}``"""

    @abstractmethod
    async def get_user_stats(self, user_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_user_action_history(self, user_id: str, limit: int) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_user_membership_history(self, user_id: str) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_contribution_kpis(self) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_contribution_evolution(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> Dict[str, Any]:
        """``{"evolutionByMonth": [{"month", "totalAmount", "count"}, ...], ...}``"""

    @abstractmethod
    async def get_item_statistics(self) -> List[Dict[str, Any]]:
        """``[{"itemId", "totalAmount", "count"}, ...]``"""

    @abstractmethod
    async def get_contribution_geographic_data(self) -> Any: ...

    @abstractmethod
    async def get_contributor_demographics(self) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_recent_contributions(self, limit: int) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_all_contributions(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_membership_plans(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_membership_plan(self, plan_id: str) -> Optional[Dict[str, Any]]: ...


def _require_str(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing required parameter '{key}'", parameter=key)
    return value.strip()


def _int_arg(args: Dict[str, Any], key: str, default: int, lo: int = 1, hi: int = 1000) -> int:
    value = args.get(key)
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Parameter '{key}' must be a number", parameter=key, received=str(value))
    return max(lo, min(hi, number))


def compute_stat(operation: str, values: List[float]) -> Optional[float]:
    """Apply a summary operation; ``None`` for an empty series (except count)."""
    if operation == "count":
        return len(values)
    if not values:
        return None
    if operation == "sum":
        return sum(values)
    if operation == "average":
        return statistics.fmean(values)
    if operation == "min":
        return min(values)
    if operation == "max":
        return max(values)
    if operation == "median":
        return statistics.median(values)
    raise ValidationError(
        f"Unsupported operation '{operation}'",
        parameter="operation",
        expected=", ".join(STAT_OPERATIONS),
        received=operation,
    )


class AdminToolHandlers:
    """Tool handlers bound to one data store.

    Each public coroutine takes the argument dict produced by the model.
    """

    def __init__(
        self,
        store: Optional[AdminDataStore],
        web_search_url: str = "https://api.duckduckgo.com/",
        web_search_timeout: float = 10.0,
    ):
        self._store = store
        self.web_search_url = web_search_url
        self.web_search_timeout = web_search_timeout

    @property
    def store(self) -> AdminDataStore:
        if self._store is None:
            raise DependencyUnavailableError(
                "Admin data store is not configured",
                details="The assistant can only answer questions that need no stored data",
                service="document_store",
            )
        return self._store

    async def _load_user(self, user_id: str) -> Dict[str, Any]:
        user = await self.store.get_user(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found", resource_type="user", resource_id=user_id)
        return user

    # -- users ---------------------------------------------------------------

    async def get_users_count(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return {"totalUsers": await self.store.count_users()}

    async def get_user(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._load_user(_require_str(args, "userId"))

    async def list_users(self, args: Dict[str, Any]) -> Dict[str, Any]:
        listing = await self.store.list_users()
        users = listing.get("users", [])
        legacy = listing.get("legacyMembers", [])
        return {
            "totalUsers": len(users),
            "totalLegacyMembers": len(legacy),
            "users": users[:MAX_LISTED_USERS],
            "legacyMembers": legacy[: MAX_LISTED_USERS // 2],
        }

    async def get_user_stats(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self.store.get_user_stats(_require_str(args, "userId"))

    async def get_user_action_history(self, args: Dict[str, Any]) -> Dict[str, Any]:
        user_id = _require_str(args, "userId")
        limit = _int_arg(args, "limit", DEFAULT_ACTION_HISTORY, hi=500)
        actions = await self.store.get_user_action_history(user_id, limit)
        return {"userId": user_id, "count": len(actions), "actions": actions}

    async def get_user_membership_history(self, args: Dict[str, Any]) -> Dict[str, Any]:
        user_id = _require_str(args, "userId")
        history = await self.store.get_user_membership_history(user_id)
        return {"userId": user_id, "count": len(history), "history": history}

    # -- account actions (confirmation cards only) ---------------------------

    async def prepare_update_user(self, args: Dict[str, Any]) -> Dict[str, Any]:
        user_id = _require_str(args, "userId")
        updates = args.get("updates")
        if not isinstance(updates, dict) or not updates:
            raise ValidationError("Parameter 'updates' must be a non-empty object", parameter="updates")
        user = await self._load_user(user_id)
        current = {key: user.get(key) for key in updates}
        return action_card(
            title=f"Update {_display_name(user)}",
            description="Review the changes below before applying them.",
            data={"userId": user_id, "current": current, "proposed": updates},
            variant="warning",
            actions=[
                action(
                    "Apply changes",
                    "update_user",
                    {"userId": user_id, "updates": updates},
                    color="orange",
                    confirm_message="Apply these changes to the user profile?",
                ),
                action("Open profile", "navigate", {"path": resolve_admin_path("user", user_id)}, variant="outline"),
            ],
        )

    async def prepare_add_loyalty_points(self, args: Dict[str, Any]) -> Dict[str, Any]:
        user_id = _require_str(args, "userId")
        reason = _require_str(args, "reason")
        points = args.get("points")
        if isinstance(points, bool) or not isinstance(points, (int, float)) or points == 0:
            raise ValidationError("Parameter 'points' must be a non-zero number", parameter="points")
        user = await self._load_user(user_id)
        balance = user.get("loyaltyPoints") or 0
        return action_card(
            title=f"Add {points:g} loyalty points",
            description=f"{_display_name(user)}: {balance} -> {balance + points} points. Reason: {reason}",
            data={"userId": user_id, "currentPoints": balance, "points": points, "reason": reason},
            variant="info",
            actions=[
                action(
                    "Add points",
                    "add_loyalty_points",
                    {"userId": user_id, "points": points, "reason": reason},
                    color="green",
                    confirm_message=f"Add {points:g} points to this account?",
                ),
            ],
        )

    async def prepare_toggle_account_blocked(self, args: Dict[str, Any]) -> Dict[str, Any]:
        user_id = _require_str(args, "userId")
        reason = _require_str(args, "reason")
        block = args.get("isBlocked")
        if not isinstance(block, bool):
            raise ValidationError("Parameter 'isBlocked' must be true or false", parameter="isBlocked")
        user = await self._load_user(user_id)
        verb = "Block" if block else "Unblock"
        return action_card(
            title=f"{verb} {_display_name(user)}",
            description=(
                "The member will no longer be able to sign in or scan their card."
                if block
                else "The member will regain access to their account."
            ),
            data={"userId": user_id, "currentlyBlocked": bool(user.get("isAccountBlocked")), "reason": reason},
            variant="danger" if block else "warning",
            actions=[
                action(
                    f"{verb} account",
                    "toggle_account_blocked",
                    {"userId": user_id, "isBlocked": block, "reason": reason},
                    color="red" if block else "orange",
                    confirm_message=f"{verb} this account?",
                ),
            ],
        )

    # -- contributions -------------------------------------------------------

    async def get_contribution_kpis(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self.store.get_contribution_kpis()

    async def get_contribution_evolution(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self.store.get_contribution_evolution(args.get("startDate"), args.get("endDate"))

    async def get_item_statistics(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self.store.get_item_statistics()

    async def get_contribution_geographic_data(self, args: Dict[str, Any]) -> Any:
        return await self.store.get_contribution_geographic_data()

    async def get_contributor_demographics(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self.store.get_contributor_demographics()

    async def get_recent_contributions(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        limit = _int_arg(args, "limit", DEFAULT_RECENT_CONTRIBUTIONS, hi=100)
        return await self.store.get_recent_contributions(limit)

    async def get_all_contributions(self, args: Dict[str, Any]) -> Dict[str, Any]:
        contributions = await self.store.get_all_contributions()
        return {"total": len(contributions), "contributions": contributions[:MAX_LISTED_CONTRIBUTIONS]}

    # -- plans ---------------------------------------------------------------

    async def get_membership_plans(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self.store.get_membership_plans()

    async def get_membership_plan_by_id(self, args: Dict[str, Any]) -> Dict[str, Any]:
        plan_id = _require_str(args, "planId")
        plan = await self.store.get_membership_plan(plan_id)
        if not plan:
            raise NotFoundError(f"Membership plan {plan_id} not found", resource_type="plan", resource_id=plan_id)
        return plan

    # -- charts --------------------------------------------------------------

    async def create_chart(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return chart_payload(
            args.get("type"),
            args.get("title") or "Chart",
            args.get("data") or [],
            x_key=args.get("xKey"),
            y_key=args.get("yKey"),
            name_key=args.get("nameKey"),
            value_key=args.get("valueKey"),
        )

    async def create_contribution_chart(self, args: Dict[str, Any]) -> Dict[str, Any]:
        months = _int_arg(args, "months", DEFAULT_CHART_MONTHS, hi=36)
        evolution = await self.store.get_contribution_evolution()
        rows = [
            {"month": m.get("month"), "amount": m.get("totalAmount", 0), "contributions": m.get("count", 0)}
            for m in evolution.get("evolutionByMonth", [])[-months:]
        ]
        return chart_payload(
            "line",
            f"Contributions over the last {months} months",
            rows,
            x_key="month",
            y_key="amount",
        )

    async def create_item_stats_chart(self, args: Dict[str, Any]) -> Dict[str, Any]:
        chart_type = args.get("chartType") or "bar"
        stats = await self.store.get_item_statistics()
        rows = [
            {"item": s.get("itemId"), "amount": s.get("totalAmount", 0), "contributions": s.get("count", 0)}
            for s in stats
        ]
        if chart_type == "pie":
            return chart_payload("pie", "Contributions by item", rows, name_key="item", value_key="amount")
        return chart_payload(chart_type, "Statistics by item", rows, x_key="item", y_key="amount")

    # -- stats ---------------------------------------------------------------

    async def calculate_custom_stats(self, args: Dict[str, Any]) -> Dict[str, Any]:
        operation = _require_str(args, "operation")
        data_type = _require_str(args, "dataType")
        if operation not in STAT_OPERATIONS:
            raise ValidationError(
                f"Unsupported operation '{operation}'",
                parameter="operation",
                expected=", ".join(STAT_OPERATIONS),
                received=operation,
            )

        if data_type == "contributions":
            field_name = args.get("field") or "amount"
            rows = [
                c for c in await self.store.get_all_contributions() if c.get("paymentStatus", "completed") == "completed"
            ]
        elif data_type in ("users", "loyalty_points"):
            field_name = args.get("field") or "loyaltyPoints"
            rows = (await self.store.list_users()).get("users", [])
        else:
            raise ValidationError(
                f"Unsupported data type '{data_type}'",
                parameter="dataType",
                expected=", ".join(STAT_DATA_TYPES),
                received=data_type,
            )

        values = [
            float(row[field_name])
            for row in rows
            if isinstance(row.get(field_name), (int, float)) and not isinstance(row.get(field_name), bool)
        ]
        return {
            "operation": operation,
            "dataType": data_type,
            "field": field_name,
            "sampleSize": len(values),
            "result": compute_stat(operation, values),
        }

    # -- navigation ----------------------------------------------------------

    async def navigate_to(self, args: Dict[str, Any]) -> Dict[str, Any]:
        page = _require_str(args, "page")
        path = resolve_admin_path(page, args.get("id"))
        title = args.get("title") or page.replace("_", " ").title()
        return navigation_card(
            title=title,
            description=args.get("description") or f"Open {title} in the admin panel",
            path=path,
            button_label=args.get("buttonLabel") or "Open",
        )

    # -- external ------------------------------------------------------------

    async def web_search(self, args: Dict[str, Any]) -> Dict[str, Any]:
        query = _require_str(args, "query")
        params = {"q": query, "format": "json", "no_html": 1, "skip_disambig": 1}
        try:
            async with httpx.AsyncClient(timeout=self.web_search_timeout) as client:
                resp = await client.get(self.web_search_url, params=params)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DependencyUnavailableError("Web search failed", details=str(e), service="web_search")

        topics = [t for t in data.get("RelatedTopics", []) if isinstance(t, dict) and t.get("Text")]
        return {
            "query": query,
            "abstract": data.get("AbstractText") or data.get("Abstract") or "",
            "source": data.get("AbstractSource", ""),
            "url": data.get("AbstractURL", ""),
            "relatedTopics": [{"text": t.get("Text", ""), "url": t.get("FirstURL", "")} for t in topics[:5]],
        }


def _display_name(user: Dict[str, Any]) -> str:
    name = " ".join(part for part in (user.get("firstName"), user.get("lastName")) if part)
    return name or user.get("email") or user.get("uid") or "user"


_USER_ID = {"userId": {"type": "string", "description": "UID of the user"}}


def register_admin_tools(
    catalog: ToolCatalog,
    store: Optional[AdminDataStore],
    web_search_url: str = "https://api.duckduckgo.com/",
) -> AdminToolHandlers:
    """Register every admin tool with the catalog and return the bound handlers."""
    h = AdminToolHandlers(store, web_search_url=web_search_url)

    def _add(name, category, brief, description, handler, parameters=None, required=None):
        catalog.register(
            ToolDescriptor(
                name=name,
                description=description,
                parameters=parameters or {},
                required_params=required or [],
                handler=handler,
                category=category,
                brief=brief,
            )
        )

    # Users
    _add("get_users_count", ToolCategory.USERS, "Total number of registered users",
         "Count the total number of users in the system.", h.get_users_count)
    _add("get_user", ToolCategory.USERS, "Full profile of one user",
         "Get the complete profile of a user by UID.", h.get_user, _USER_ID, ["userId"])
    _add("list_users", ToolCategory.USERS, "List users and legacy members",
         "List all users (current and legacy members). Large lists are truncated.", h.list_users)
    _add("get_user_stats", ToolCategory.USERS, "Per-user activity statistics",
         "Compute detailed statistics for a user (scans, transactions, events).",
         h.get_user_stats, _USER_ID, ["userId"])
    _add("get_user_action_history", ToolCategory.USERS, "Action log of a user",
         "Get the history of actions performed by or on a user.", h.get_user_action_history,
         {**_USER_ID, "limit": {"type": "number", "description": f"Maximum actions (default {DEFAULT_ACTION_HISTORY})"}},
         ["userId"])
    _add("get_user_membership_history", ToolCategory.USERS, "Subscription history of a user",
         "Get the full membership/subscription history of a user.", h.get_user_membership_history,
         _USER_ID, ["userId"])

    # Account actions
    _add("prepare_update_user", ToolCategory.ACCOUNT_ACTIONS, "Propose profile changes for confirmation",
         "Prepare an update of user fields. Nothing is changed until the admin confirms the returned card.",
         h.prepare_update_user,
         {**_USER_ID, "updates": {"type": "object", "description": "Fields to change (firstName, lastName, email, phone...)"}},
         ["userId", "updates"])
    _add("prepare_add_loyalty_points", ToolCategory.ACCOUNT_ACTIONS, "Propose a loyalty points adjustment",
         "Prepare adding loyalty points to a user. The admin confirms the returned card.",
         h.prepare_add_loyalty_points,
         {**_USER_ID,
          "points": {"type": "number", "description": "Points to add (negative to remove)"},
          "reason": {"type": "string", "description": "Reason for the adjustment"}},
         ["userId", "points", "reason"])
    _add("prepare_toggle_account_blocked", ToolCategory.ACCOUNT_ACTIONS, "Propose blocking/unblocking an account",
         "Prepare blocking or unblocking a user account. Explain the consequences; the admin confirms the card.",
         h.prepare_toggle_account_blocked,
         {**_USER_ID,
          "isBlocked": {"type": "boolean", "description": "true to block, false to unblock"},
          "reason": {"type": "string", "description": "Reason for the change"}},
         ["userId", "isBlocked", "reason"])

    # Contributions
    _add("get_contribution_kpis", ToolCategory.CONTRIBUTIONS, "Crowdfunding KPIs",
         "Get key performance indicators for crowdfunding contributions.", h.get_contribution_kpis)
    _add("get_contribution_evolution", ToolCategory.CONTRIBUTIONS, "Contributions over time",
         "Get the evolution of contributions over time, by month.", h.get_contribution_evolution,
         {"startDate": {"type": "string", "description": "Start date (ISO 8601)"},
          "endDate": {"type": "string", "description": "End date (ISO 8601)"}})
    _add("get_item_statistics", ToolCategory.CONTRIBUTIONS, "Statistics per crowdfunding item",
         "Get detailed statistics per crowdfunding item/package.", h.get_item_statistics)
    _add("get_contribution_geographic_data", ToolCategory.CONTRIBUTIONS, "Contributions by postal code",
         "Get the geographic distribution of contributions (by postal code).", h.get_contribution_geographic_data)
    _add("get_contributor_demographics", ToolCategory.CONTRIBUTIONS, "Contributor age statistics",
         "Get contributor demographics (average age, age groups).", h.get_contributor_demographics)
    _add("get_recent_contributions", ToolCategory.CONTRIBUTIONS, "Latest contributions",
         "Get the most recent contributions.", h.get_recent_contributions,
         {"limit": {"type": "number", "description": f"Number of contributions (default {DEFAULT_RECENT_CONTRIBUTIONS})"}})
    _add("get_all_contributions", ToolCategory.CONTRIBUTIONS, "All contributions (truncated)",
         "Get all contributions. Can be large; results are truncated.", h.get_all_contributions)

    # Plans
    _add("get_membership_plans", ToolCategory.PLANS, "Available membership plans",
         "Get all available membership plans.", h.get_membership_plans)
    _add("get_membership_plan_by_id", ToolCategory.PLANS, "One membership plan",
         "Get a membership plan by its ID.", h.get_membership_plan_by_id,
         {"planId": {"type": "string", "description": "ID of the plan"}}, ["planId"])

    # Charts
    _add("create_chart", ToolCategory.CHARTS, "Chart from custom data",
         "Render a chart (line, bar, pie, area) from data you already have.", h.create_chart,
         {"type": {"type": "string", "enum": list(CHART_TYPES), "description": "Chart type"},
          "title": {"type": "string", "description": "Chart title"},
          "data": {"type": "array", "items": {"type": "object"}, "description": "Rows of the chart"},
          "xKey": {"type": "string", "description": "X axis key (line/bar/area)"},
          "yKey": {"type": "string", "description": "Y axis key (line/bar/area)"},
          "nameKey": {"type": "string", "description": "Label key (pie)"},
          "valueKey": {"type": "string", "description": "Value key (pie)"}},
         ["type", "title", "data"])
    _add("create_contribution_chart", ToolCategory.CHARTS, "Monthly contributions chart",
         "Render the evolution of contributions as a line chart.", h.create_contribution_chart,
         {"months": {"type": "number", "description": f"Months to show (default {DEFAULT_CHART_MONTHS})"}})
    _add("create_item_stats_chart", ToolCategory.CHARTS, "Per-item contributions chart",
         "Render contribution statistics per item as a bar or pie chart.", h.create_item_stats_chart,
         {"chartType": {"type": "string", "enum": ["bar", "pie"], "description": "Chart type"}})

    # Stats
    _add("calculate_custom_stats", ToolCategory.STATS, "Sum/average/median/min/max/count",
         "Compute a summary statistic over contributions or users.", h.calculate_custom_stats,
         {"operation": {"type": "string", "enum": list(STAT_OPERATIONS), "description": "Operation"},
          "dataType": {"type": "string", "enum": list(STAT_DATA_TYPES), "description": "Data set"},
          "field": {"type": "string", "description": "Field to aggregate (e.g. amount, loyaltyPoints)"}},
         ["operation", "dataType"])

    # Navigation
    _add("navigate_to", ToolCategory.NAVIGATION, "Link to a page of the admin panel",
         "Offer a button that opens a page of the admin panel.", h.navigate_to,
         {"page": {"type": "string", "enum": sorted(ADMIN_PAGES), "description": "Page to open"},
          "id": {"type": "string", "description": "Record id for detail pages (user, event, campaign)"},
          "title": {"type": "string", "description": "Card title"},
          "description": {"type": "string", "description": "Card description"}},
         ["page"])

    # External
    _add("web_search", ToolCategory.EXTERNAL, "Search the web",
         "Search the web for external information.", h.web_search,
         {"query": {"type": "string", "description": "Search query"}}, ["query"])

    logger.info(f"Registered {len(catalog)} admin tools")
    return h
