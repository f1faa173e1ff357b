"""
UI payloads returned by assistant tools.

The admin panel renders three kinds of rich tool results inline with the
answer: charts (``chartType == "chart"``), navigation cards and action
cards (``type == "navigation_card"`` / ``"action_card"``). Keys are
camelCase because the frontend reads them as-is.
"""

from typing import Any, Dict, List, Optional

from errors import ValidationError

CHART_TYPES = ("line", "bar", "pie", "area")

# Admin panel pages the assistant may link to
ADMIN_PAGES = {
    "dashboard": "/admin/dashboard",
    "users": "/admin/users",
    "user": "/admin/users/{id}",
    "user_edit": "/admin/users/{id}/edit",
    "new_user": "/admin/users/new",
    "memberships": "/admin/memberships",
    "crowdfunding": "/admin/crowdfunding",
    "events": "/admin/events",
    "event": "/admin/events/{id}",
    "campaigns": "/admin/campaigns",
    "campaign": "/admin/campaigns/{id}",
    "analytics": "/admin/analytics/overview",
    "analytics_contributions": "/admin/analytics/contributions",
    "analytics_demographics": "/admin/analytics/demographics",
    "analytics_engagement": "/admin/analytics/engagement",
    "analytics_financial": "/admin/analytics/financial",
    "coworking": "/admin/coworking",
    "settings": "/admin/settings",
}


def chart_payload(
    chart_type: str,
    title: str,
    data: List[Dict[str, Any]],
    x_key: Optional[str] = None,
    y_key: Optional[str] = None,
    name_key: Optional[str] = None,
    value_key: Optional[str] = None,
) -> Dict[str, Any]:
    """Chart description for the panel's chart widget.

    Line, bar and area charts need ``x_key``/``y_key``; pie charts need
    ``name_key``/``value_key``. Missing keys are inferred from the first
    data row when possible.
    """
    if chart_type not in CHART_TYPES:
        raise ValidationError(
            f"Unsupported chart type '{chart_type}'",
            parameter="type",
            expected=", ".join(CHART_TYPES),
            received=str(chart_type),
        )
    if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
        raise ValidationError("Chart data must be a list of objects", parameter="data")

    columns = list(data[0].keys()) if data else []
    payload: Dict[str, Any] = {"chartType": "chart", "type": chart_type, "title": title, "data": data}

    if chart_type == "pie":
        payload["nameKey"] = name_key or (columns[0] if columns else None)
        payload["valueKey"] = value_key or (columns[1] if len(columns) > 1 else None)
    else:
        payload["xKey"] = x_key or (columns[0] if columns else None)
        payload["yKey"] = y_key or (columns[1] if len(columns) > 1 else None)
    return payload


def navigation_card(
    title: str,
    description: str,
    path: str,
    button_label: str = "Open",
    icon: Optional[str] = None,
) -> Dict[str, Any]:
    card = {
        "type": "navigation_card",
        "title": title,
        "description": description,
        "path": path,
        "buttonLabel": button_label,
    }
    if icon:
        card["icon"] = icon
    return card


def resolve_admin_path(page: str, record_id: Optional[str] = None) -> str:
    """Panel path for a named page, filling ``{id}`` for detail pages."""
    template = ADMIN_PAGES.get(page)
    if template is None:
        raise ValidationError(
            f"Unknown admin page '{page}'",
            parameter="page",
            expected=", ".join(sorted(ADMIN_PAGES)),
            received=page,
        )
    if "{id}" in template:
        if not record_id:
            raise ValidationError(f"Page '{page}' needs a record id", parameter="id")
        return template.format(id=record_id)
    return template


def action(
    label: str,
    action_type: str,
    action_data: Dict[str, Any],
    color: Optional[str] = None,
    variant: str = "filled",
    confirm_message: Optional[str] = None,
) -> Dict[str, Any]:
    entry = {
        "label": label,
        "actionType": action_type,
        "actionData": action_data,
        "variant": variant,
    }
    if color:
        entry["color"] = color
    if confirm_message:
        entry["confirmMessage"] = confirm_message
    return entry


def action_card(
    title: str,
    actions: List[Dict[str, Any]],
    description: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    variant: str = "info",
) -> Dict[str, Any]:
    """Card with buttons; the panel executes the action only after the admin clicks."""
    card: Dict[str, Any] = {
        "type": "action_card",
        "title": title,
        "actions": actions,
        "variant": variant,
    }
    if description:
        card["description"] = description
    if data:
        card["data"] = data
    return card
