"""
Tool Catalog - registry and relevance selection for assistant tools.

Every tool is a self-contained ToolDescriptor registered once at startup.
Per message, only a relevant slice of the catalog is advertised to the
model: a fixed core subset plus the topic clusters whose trigger keywords
appear in the message. Clusters are plain data in TOOL_CLUSTERS, so adding
one is a table edit.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Callable, Optional, Sequence
import logging

from errors import DuplicateToolError, UnknownToolError, CatalogFrozenError

logger = logging.getLogger(__name__)


class ToolCategory(Enum):
    """Tool categories for grouping in prompts and the tools endpoint."""

    USERS = "users"
    ACCOUNT_ACTIONS = "account_actions"
    CONTRIBUTIONS = "contributions"
    PLANS = "plans"
    CHARTS = "charts"
    STATS = "stats"
    EXTERNAL = "external"
    NAVIGATION = "navigation"


@dataclass
class ToolDescriptor:
    """Definition of a tool for the catalog.

    ``handler`` takes the argument dict the model produced and returns a
    JSON-serializable value or raises. It may be sync or async.
    """

    name: str
    description: str
    parameters: Dict[str, Any]
    required_params: List[str]
    handler: Callable[[Dict[str, Any]], Any]
    category: ToolCategory
    brief: str = ""  # One-line summary for the system prompt

    def to_schema(self) -> Dict[str, Any]:
        """OpenAI-compatible function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.parameters,
                    "required": self.required_params,
                },
            },
        }


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        """Assistant-message ``tool_calls`` entry."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.tool_name,
                "arguments": json.dumps(self.arguments, default=str),
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "tool_name": self.tool_name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        return cls(id=data["id"], tool_name=data["tool_name"], arguments=data.get("arguments") or {})


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one ToolCall. Exactly one of ``value``/``error`` is meaningful."""

    tool_call_id: str
    tool_name: str
    value: Any = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_wire(self) -> Dict[str, Any]:
        """``tool`` role message correlated to its call."""
        payload = {"error": self.error} if self.error is not None else self.value
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "name": self.tool_name,
            "content": json.dumps(payload, default=str, ensure_ascii=False),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "value": self.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolResult":
        return cls(
            tool_call_id=data["tool_call_id"],
            tool_name=data["tool_name"],
            value=data.get("value"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ToolCluster:
    """Topic cluster: if any keyword occurs in the message, its tools are offered."""

    name: str
    keywords: Sequence[str]
    tools: Sequence[str]


# Always offered
CORE_TOOLS = (
    "get_users_count",
    "get_user",
    "get_contribution_kpis",
    "navigate_to",
)

# Keywords are matched as lowercase substrings (English and French)
TOOL_CLUSTERS = (
    ToolCluster(
        name="users",
        keywords=("user", "utilisateur", "profil", "account", "compte", "history", "historique",
                  "activity", "activité", "scan", "transaction"),
        tools=("list_users", "get_user_stats", "get_user_action_history", "get_user_membership_history"),
    ),
    ToolCluster(
        name="account_actions",
        keywords=("block", "bloqu", "loyalty", "fidélité", "points", "update", "modif", "edit", "change"),
        tools=("prepare_update_user", "prepare_add_loyalty_points", "prepare_toggle_account_blocked"),
    ),
    ToolCluster(
        name="contributions",
        keywords=("contribution", "crowdfunding", "donation", "donor", "contributor", "contributeur",
                  "kpi", "revenue", "amount", "montant", "geograph", "postal", "demograph",
                  "démograph", "age group", "tranche", "recent", "récent"),
        tools=("get_contribution_evolution", "get_item_statistics", "get_contribution_geographic_data",
               "get_contributor_demographics", "get_recent_contributions", "get_all_contributions"),
    ),
    ToolCluster(
        name="plans",
        keywords=("plan", "subscription", "abonnement", "forfait", "membership", "adhésion",
                  "pricing", "tarif", "tier"),
        tools=("get_membership_plans", "get_membership_plan_by_id"),
    ),
    ToolCluster(
        name="charts",
        keywords=("chart", "graph", "plot", "visual", "diagram", "courbe", "trend", "tendance",
                  "evolution", "évolution"),
        tools=("create_chart", "create_contribution_chart", "create_item_stats_chart",
               "get_contribution_evolution", "get_item_statistics"),
    ),
    ToolCluster(
        name="stats",
        keywords=("average", "mean", "median", "sum", "total", "minimum", "maximum", "moyenne",
                  "médiane", "somme", "statistic", "statistique"),
        tools=("calculate_custom_stats",),
    ),
    ToolCluster(
        name="web",
        keywords=("web", "internet", "online", "google", "news", "actualité", "en ligne"),
        tools=("web_search",),
    ),
)


def select_tool_names(
    text: str,
    clusters: Sequence[ToolCluster] = TOOL_CLUSTERS,
    core: Sequence[str] = CORE_TOOLS,
) -> List[str]:
    """Names of the tools relevant to a message.

    Core names first, then each matching cluster's tools in table order,
    without duplicates.
    """
    lowered = (text or "").lower()
    names: List[str] = []
    seen = set()

    def _add(name: str) -> None:
        if name not in seen:
            seen.add(name)
            names.append(name)

    for name in core:
        _add(name)
    for cluster in clusters:
        if any(keyword in lowered for keyword in cluster.keywords):
            for name in cluster.tools:
                _add(name)
    return names


class ToolCatalog:
    """
    Registry of every tool the assistant can call.

    Built once at startup, then frozen; reads need no locking.

    Usage:
        catalog = ToolCatalog()
        catalog.register(ToolDescriptor(...))
        catalog.freeze()

        tools = catalog.select("how many members joined this month?")
        schema = catalog.get_tools_schema(tools)
        handler = catalog.lookup("get_users_count").handler
    """

    def __init__(
        self,
        clusters: Sequence[ToolCluster] = TOOL_CLUSTERS,
        core: Sequence[str] = CORE_TOOLS,
    ):
        self._tools: Dict[str, ToolDescriptor] = {}
        self._clusters = tuple(clusters)
        self._core = tuple(core)
        self._frozen = False

    def register(self, tool: ToolDescriptor) -> None:
        """Register a tool definition. Names are unique."""
        if self._frozen:
            raise CatalogFrozenError(f"Cannot register '{tool.name}': catalog is frozen", tool=tool.name)
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def freeze(self) -> None:
        self._frozen = True
        missing = [name for name in self._core if name not in self._tools]
        if missing:
            logger.warning(f"Core tools not registered: {', '.join(missing)}")
        logger.info(f"Tool catalog frozen with {len(self._tools)} tools")

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, name: str) -> ToolDescriptor:
        """Get a tool definition by name, raising UnknownToolError if absent."""
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get_all_tools(self) -> List[ToolDescriptor]:
        """All registered tools in registration order."""
        return list(self._tools.values())

    def get_tools_by_category(self, category: ToolCategory) -> List[ToolDescriptor]:
        return [t for t in self._tools.values() if t.category == category]

    def select(self, text: str) -> List[ToolDescriptor]:
        """Relevant tools for a message: core subset plus matching clusters.

        Names in the cluster table that are not registered are skipped. If
        nothing registered matches (a catalog without the core tools), the
        whole catalog is returned so the result is never empty.
        """
        names = select_tool_names(text, self._clusters, self._core)
        selected = [self._tools[name] for name in names if name in self._tools]
        if not selected:
            return self.get_all_tools()
        return selected

    @staticmethod
    def get_tools_schema(tools: Sequence[ToolDescriptor]) -> List[Dict[str, Any]]:
        """Generate OpenAI-compatible tools schema for function calling."""
        return [tool.to_schema() for tool in tools]

    def generate_tools_section(self) -> str:
        """Tool overview for the system prompt, grouped by category."""
        lines = ["TOOLS YOU HAVE:"]
        for category in ToolCategory:
            tools = [t for t in self.get_tools_by_category(category) if t.brief]
            if not tools:
                continue
            lines.append(f"{category.value.replace('_', ' ').title()}:")
            for tool in tools:
                lines.append(f"- {tool.name}: {tool.brief}")
        return "\n".join(lines)
