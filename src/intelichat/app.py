"""FastAPI application for the InteliChat conversation engine.

This is the main entry point for the chat API server.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import asyncpg
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .agent.api import create_chat_dependencies
from .agent.api import router as chat_router
from .agent.orchestrator import (
    AgentConfigResolver,
    ChatService,
    DecisionRequester,
    OrchestratorConfig,
    ResolverConfig,
    RetrievalAugmentor,
    ToolExecutor,
    TurnOrchestrator,
)
from .agent.persistence import (
    InMemoryAgentStore,
    InMemoryConversationStore,
    PostgresAgentStore,
    PostgresConversationStore,
)
from .agent.providers import LLMProviderConfig, OpenAIProvider, ProviderFactory
from .agent.retrieval import PineconeConfig, PineconeRetriever
from .agent.tools import HttpToolClient, HttpToolConfig, ToolRegistry

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "openrouter": "openai/gpt-4o-mini",
    "groq": "llama-3.1-8b-instant",
    "ollama": "llama3.1",
}


def load_orchestrator_config() -> OrchestratorConfig:
    """Build the orchestrator configuration from the environment."""
    config = OrchestratorConfig(
        default_agent=os.getenv("DEFAULT_AGENT", "info").lower(),
    )
    specialists = os.getenv("SPECIALIST_AGENTS")
    if specialists:
        config.specialist_agents = frozenset(
            name.strip().lower() for name in specialists.split(",") if name.strip()
        )
    return config


def load_resolver_config(orchestrator_config: OrchestratorConfig) -> ResolverConfig:
    """Build the resolver configuration from the environment."""
    prompts_dir = os.getenv("PROMPTS_DIR")
    return ResolverConfig(
        cache_ttl_seconds=float(os.getenv("AGENT_CACHE_TTL_SECONDS", "120")),
        prompts_dir=Path(prompts_dir) if prompts_dir else None,
        store_timeout_seconds=orchestrator_config.store_timeout_seconds,
    )


def build_provider_factory() -> ProviderFactory:
    """Configure every LLM provider that has credentials in the environment."""
    default_provider = os.getenv("LLM_PROVIDER", "openai").lower()
    default_model = os.getenv("LLM_MODEL")
    keys = {
        "openai": os.getenv("OPENAI_API_KEY"),
        "openrouter": os.getenv("OPENROUTER_API_KEY"),
        "groq": os.getenv("GROQ_API_KEY"),
    }

    configs: dict[str, LLMProviderConfig] = {}
    for name, api_key in keys.items():
        if api_key:
            configs[name] = LLMProviderConfig(
                api_key=api_key,
                model=default_model if name == default_provider and default_model else DEFAULT_MODELS[name],
                base_url=os.getenv("LLM_BASE_URL") if name == default_provider else None,
            )

    ollama_url = os.getenv("OLLAMA_BASE_URL")
    if ollama_url or default_provider == "ollama":
        configs["ollama"] = LLMProviderConfig(
            api_key="",
            model=default_model if default_provider == "ollama" and default_model else DEFAULT_MODELS["ollama"],
            base_url=ollama_url or "http://localhost:11434",
        )

    if default_provider not in configs:
        if not configs:
            raise ValueError(
                "No LLM provider configured (OPENAI_API_KEY, OPENROUTER_API_KEY, "
                "GROQ_API_KEY or OLLAMA_BASE_URL)"
            )
        fallback = next(iter(configs))
        logger.warning(
            f"LLM_PROVIDER '{default_provider}' has no credentials, using '{fallback}'"
        )
        default_provider = fallback

    logger.info(f"LLM providers configured: {', '.join(sorted(configs))}")
    return ProviderFactory(configs, default_provider=default_provider)


def build_retriever(agent_store) -> Optional[PineconeRetriever]:
    """Pinecone retriever, when both Pinecone and OpenAI embeddings are configured."""
    pinecone_key = os.getenv("PINECONE_API_KEY")
    openai_key = os.getenv("OPENAI_API_KEY")
    if not pinecone_key or not openai_key:
        logger.warning("PINECONE_API_KEY or OPENAI_API_KEY missing - retrieval disabled")
        return None

    embedder = OpenAIProvider(
        LLMProviderConfig(
            api_key=openai_key,
            model=DEFAULT_MODELS["openai"],
            embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
        )
    )
    logger.info("Pinecone retrieval enabled")
    return PineconeRetriever(agent_store, embedder, PineconeConfig(api_key=pinecone_key))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Initialize database pool, providers, tools, retrieval and the orchestrator
    - Shutdown: Close HTTP clients, providers and the database pool
    """
    logger.info("Starting InteliChat API...")

    db_pool = None
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        db_pool = await asyncpg.create_pool(database_url, min_size=2, max_size=10)
        agent_store = PostgresAgentStore(db_pool)
        conversation_store = PostgresConversationStore(db_pool)
        logger.info("Database pool initialized")
    else:
        logger.warning("DATABASE_URL not configured - using in-memory stores")
        agent_store = InMemoryAgentStore()
        conversation_store = InMemoryConversationStore()

    config = load_orchestrator_config()
    provider_factory = build_provider_factory()
    http_tools = HttpToolClient(
        agent_store, HttpToolConfig(timeout=config.tool_timeout_seconds)
    )
    retriever = build_retriever(agent_store)

    resolver = AgentConfigResolver(agent_store, load_resolver_config(config))
    orchestrator = TurnOrchestrator(
        resolver=resolver,
        decision_requester=DecisionRequester(
            provider_factory.get(),
            provider_factory=provider_factory,
            timeout_seconds=config.model_timeout_seconds,
            apology_message=config.apology_message,
        ),
        tool_executor=ToolExecutor(
            ToolRegistry(http_tools), timeout_seconds=config.tool_timeout_seconds
        ),
        retrieval_augmentor=RetrievalAugmentor(
            retriever,
            max_results=config.retrieval_max_results,
            score_threshold=config.retrieval_score_threshold,
            timeout_seconds=config.retrieval_timeout_seconds,
        ),
        agent_store=agent_store,
        config=config,
    )
    create_chat_dependencies(
        ChatService(orchestrator, agent_store, conversation_store), resolver
    )
    logger.info("Turn orchestrator initialized")

    yield

    # Shutdown (reverse order of initialization)
    logger.info("Shutting down InteliChat API...")

    if retriever is not None:
        await retriever.close()
        await retriever.embedder.close()
    await http_tools.close()
    await provider_factory.close()
    logger.info("HTTP clients closed")

    if db_pool is not None:
        await db_pool.close()
        logger.info("Database pool closed")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="InteliChat API",
        description="Multi-agent conversational assistant.",
        version="1.0.0",
        lifespan=lifespan,
    )

    cors_origins = os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    app.include_router(chat_router)
    logger.info("Chat router mounted at /api/chat")

    @app.get("/health")
    async def health():
        """Global health check."""
        return {"status": "healthy"}

    return app


app = create_app()


def main() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "intelichat.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )


# Entry point for running with uvicorn
if __name__ == "__main__":
    main()
