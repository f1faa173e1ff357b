"""
Membership Admin Assistant - FastAPI backend

Conversational tool-calling assistant for the admin dashboard. The model
answers admin questions by calling read-only data tools, charts and
navigation helpers over free OpenRouter models.
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AssistantConfig, runtime_config
from errors import AssistantError
from logging_config import setup_logging
from routers import assistant
from routers.chat_orchestration import SessionRegistry
from services import LLMClient, ModelGateway
from tools.admin_tools import AdminDataStore, register_admin_tools
from tools.registry import ToolCatalog

setup_logging(runtime_config.log_level)
logger = logging.getLogger(__name__)

APP_NAME = "Membership Admin Assistant"

# Instance ID - changes on every startup, used by the panel to detect restarts
INSTANCE_ID = str(uuid.uuid4())


def build_catalog(store: Optional[AdminDataStore], config: AssistantConfig) -> ToolCatalog:
    """Register every admin tool and freeze the catalog."""
    catalog = ToolCatalog()
    register_admin_tools(catalog, store, web_search_url=config.web_search_url)
    catalog.freeze()
    return catalog


def create_app(
    config: Optional[AssistantConfig] = None,
    store: Optional[AdminDataStore] = None,
    client=None,
    gateway: Optional[ModelGateway] = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Configuration (defaults to the runtime singleton)
        store: Admin data store the tools read from; tools report the
            store as unavailable when omitted
        client: Completion transport (defaults to an OpenRouter LLMClient)
        gateway: Prebuilt ModelGateway, mainly for tests
    """
    config = config or runtime_config
    client = client or LLMClient(
        config.openrouter_base_url,
        config.openrouter_api_key,
        timeout=config.llm_timeout,
        default_headers=config.get_app_headers(),
    )
    gateway = gateway or ModelGateway.from_config(client, config)
    catalog = build_catalog(store, config)
    sessions = SessionRegistry(
        catalog,
        gateway,
        history_window=config.history_window,
        tool_timeout=config.tool_timeout,
        config=config,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not config.openrouter_api_key:
            logger.warning("OPENROUTER_API_KEY is not set, model requests will fail")
        if store is None:
            logger.warning("No admin data store configured, data tools will report it unavailable")
        logger.info(f"{APP_NAME} ready ({len(catalog)} tools, models: {', '.join(gateway.candidates)})")
        yield
        close = getattr(client, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.debug(f"LLM client close error: {e}")
        logger.info(f"{APP_NAME} signing off")

    app = FastAPI(
        title=APP_NAME,
        description="Conversational assistant for the membership admin panel",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.sessions = sessions
    app.state.gateway = gateway

    # CORS - restrict to localhost and private network IPs on port 3000
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+):3000$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AssistantError, assistant.assistant_error_handler)
    app.include_router(assistant.router, tags=["assistant"])

    @app.get("/health")
    async def health():
        """Health check - configuration and component state, no network calls."""
        checks = {
            "api_key": "ok" if config.openrouter_api_key else "missing",
            "data_store": "ok" if store is not None else "missing",
        }
        all_ok = all(v == "ok" for v in checks.values())
        return {
            "status": "healthy" if all_ok else "degraded",
            "service": APP_NAME,
            "instance_id": INSTANCE_ID,
            "checks": checks,
            "models": gateway.candidates,
            "preferred_model": gateway.preferred_model,
            "tools": len(catalog),
            "sessions": len(sessions),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, ws_max_size=1048576)  # 1MB WS frame limit
