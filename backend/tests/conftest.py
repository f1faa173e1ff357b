"""
Shared pytest fixtures: a manual clock, a scripted completion client and an
in-memory admin data store.
"""

from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest

from errors import ModelRequestError
from services.model_gateway import ModelGateway
from tools.admin_tools import AdminDataStore, register_admin_tools
from tools.registry import ToolCatalog

MODELS = ["model-a", "model-b", "model-c"]


class FakeClock:
    """Monotonic clock that only moves when the code under test sleeps."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


def reply(content: str = "", tool_calls: Optional[List[Dict[str, Any]]] = None, model: str = "") -> Dict[str, Any]:
    """A translated completion as LLMClient.chat returns it."""
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {"model": model, "message": message}


def tool_call(call_id: str, name: str, **arguments) -> Dict[str, Any]:
    return {"id": call_id, "function": {"name": name, "arguments": arguments}}


def http_error(status: int, model: str = "model") -> ModelRequestError:
    return ModelRequestError(f"{model} returned HTTP {status}", model=model, status_code=status, error_type="http")


def transport_error(model: str = "model") -> ModelRequestError:
    return ModelRequestError(f"{model} request failed", model=model, error_type="transport")


class ScriptedClient:
    """Completion client answering from per-model scripts.

    ``script(model, *outcomes)`` queues replies (dicts) or exceptions for a
    model; ``default`` answers when a model's queue is empty. Every call is
    recorded in ``calls`` as ``(model, messages, tools)``.
    """

    def __init__(self, default: Any = None):
        self.default = default if default is not None else reply("ok")
        self._scripts: Dict[str, List[Any]] = defaultdict(list)
        self._streams: Dict[str, List[Any]] = defaultdict(list)
        self.calls: List[tuple] = []
        self.closed = False

    def script(self, model: str, *outcomes: Any) -> "ScriptedClient":
        self._scripts[model].extend(outcomes)
        return self

    def script_stream(self, model: str, outcome: Any) -> "ScriptedClient":
        """Queue a list of chunks (or an exception) for the next open_stream."""
        self._streams[model].append(outcome)
        return self

    def _next(self, queue: List[Any], fallback: Any) -> Any:
        outcome = queue.pop(0) if queue else fallback
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def chat(self, model, messages, tools=None, options=None):
        self.calls.append((model, [dict(m) for m in messages], tools))
        outcome = self._next(self._scripts[model], self.default)
        if callable(outcome):
            outcome = await outcome()
        return outcome

    async def open_stream(self, model, messages, options=None):
        self.calls.append((model, [dict(m) for m in messages], None))
        chunks = self._next(self._streams[model], ["ok"])

        async def _iter():
            for chunk in chunks:
                if isinstance(chunk, BaseException):
                    raise chunk
                yield chunk

        return _iter()

    async def close(self):
        self.closed = True

    def models_called(self) -> List[str]:
        return [call[0] for call in self.calls]


class FakeStore(AdminDataStore):
    """In-memory document store with a handful of members and contributions."""

    def __init__(self):
        self.users = {
            "u1": {"uid": "u1", "firstName": "Ada", "lastName": "Martin", "email": "ada@example.org",
                   "loyaltyPoints": 120, "isAccountBlocked": False, "status": "active"},
            "u2": {"uid": "u2", "firstName": "Bruno", "lastName": "Petit", "email": "bruno@example.org",
                   "loyaltyPoints": 30, "isAccountBlocked": False, "status": "active"},
            "u3": {"uid": "u3", "email": "legacy@example.org", "loyaltyPoints": 0,
                   "isAccountBlocked": True, "status": "expired"},
        }
        self.contributions = [
            {"id": "c1", "amount": 50.0, "itemId": "brick", "paymentStatus": "completed"},
            {"id": "c2", "amount": 150.0, "itemId": "wall", "paymentStatus": "completed"},
            {"id": "c3", "amount": 999.0, "itemId": "roof", "paymentStatus": "pending"},
        ]
        self.plans = [
            {"id": "monthly", "name": "Monthly", "price": 5},
            {"id": "annual", "name": "Annual", "price": 50},
        ]

    async def count_users(self):
        return len(self.users)

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def list_users(self):
        return {"users": list(self.users.values()), "legacyMembers": [{"email": "old@example.org"}]}

    async def get_user_stats(self, user_id):
        return {"userId": user_id, "totalScans": 12, "totalContributions": 2}

    async def get_user_action_history(self, user_id, limit):
        return [{"actionType": "scan", "n": i} for i in range(min(limit, 3))]

    async def get_user_membership_history(self, user_id):
        return [{"planId": "annual", "status": "active"}]

    async def get_contribution_kpis(self):
        return {"totalAmount": 200.0, "totalContributions": 2, "activeMembers": 42}

    async def get_contribution_evolution(self, start_date=None, end_date=None):
        months = [{"month": f"2026-{m:02d}", "totalAmount": m * 10.0, "count": m} for m in range(1, 10)]
        return {"evolutionByMonth": months, "startDate": start_date, "endDate": end_date}

    async def get_item_statistics(self):
        return [{"itemId": "brick", "totalAmount": 50.0, "count": 1}, {"itemId": "wall", "totalAmount": 150.0, "count": 1}]

    async def get_contribution_geographic_data(self):
        return [{"postalCode": "75011", "count": 2}]

    async def get_contributor_demographics(self):
        return {"ageGroups": {"25-34": 1, "35-44": 1}}

    async def get_recent_contributions(self, limit):
        return self.contributions[:limit]

    async def get_all_contributions(self):
        return list(self.contributions)

    async def get_membership_plans(self):
        return list(self.plans)

    async def get_membership_plan(self, plan_id):
        return next((p for p in self.plans if p["id"] == plan_id), None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client():
    return ScriptedClient()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def catalog(store):
    """Frozen catalog with every admin tool bound to the fake store."""
    cat = ToolCatalog()
    register_admin_tools(cat, store)
    cat.freeze()
    return cat


@pytest.fixture
def make_gateway(clock):
    """Factory for gateways driven by the manual clock."""

    def _make(client, candidates=None, **kwargs):
        kwargs.setdefault("min_request_delay", 1.0)
        kwargs.setdefault("max_rounds", 3)
        kwargs.setdefault("round_backoff_base", 2.0)
        return ModelGateway(
            client,
            list(candidates or MODELS),
            clock=clock,
            sleep=clock.sleep,
            **kwargs,
        )

    return _make
