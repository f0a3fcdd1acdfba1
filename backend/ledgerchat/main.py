"""FastAPI application for ledgerchat.

Wires together the ledger store, transaction engine, chat agent, and API routes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ledgerchat.config import Settings
from ledgerchat.db.repositories import (
    AccountRepo,
    ChatMessageRepo,
    ChatSessionRepo,
    SummaryRepo,
    TransactionRepo,
    UserRepo,
)
from ledgerchat.db.sqlite import SQLiteDB
from ledgerchat.ledger.analysis import SpendingAnalyzer
from ledgerchat.ledger.context import FinancialContextBuilder
from ledgerchat.ledger.engine import TransactionEngine
from ledgerchat.security import secure_database, secure_directory

settings = Settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler.

    Opens the ledger database and builds the engine and agent on startup,
    closes the database on shutdown.
    """
    logging.basicConfig(level=settings.LOG_LEVEL)

    # Ensure the data directory exists with proper permissions
    data_dir = Path(settings.DATABASE_DIR)
    secure_directory(data_dir)

    db_path = str(data_dir / "ledgerchat.db")
    db = SQLiteDB(db_path)
    secure_database(Path(db_path))

    # Create repositories
    user_repo = UserRepo(db)
    account_repo = AccountRepo(db)
    transaction_repo = TransactionRepo(db)
    summary_repo = SummaryRepo(db)
    session_repo = ChatSessionRepo(db)
    message_repo = ChatMessageRepo(db)

    engine = TransactionEngine(db, user_repo, account_repo, transaction_repo)
    context_builder = FinancialContextBuilder(
        account_repo,
        transaction_repo,
        summary_repo,
        window_days=settings.CONTEXT_WINDOW_DAYS,
        max_transactions=settings.CONTEXT_MAX_TRANSACTIONS,
    )

    # Store on app.state for access in routes
    app.state.settings = settings
    app.state.db = db
    app.state.user_repo = user_repo
    app.state.account_repo = account_repo
    app.state.transaction_repo = transaction_repo
    app.state.summary_repo = summary_repo
    app.state.session_repo = session_repo
    app.state.message_repo = message_repo
    app.state.engine = engine
    app.state.context_builder = context_builder
    app.state.analyzer = SpendingAnalyzer(account_repo, transaction_repo, summary_repo)

    # Initialize agent (if API key available)
    if settings.ANTHROPIC_API_KEY:
        from ledgerchat.agent.client import LedgerChatAgent, Repositories

        repos = Repositories(session_repo=session_repo, message_repo=message_repo)
        app.state.agent = LedgerChatAgent(
            settings=settings,
            engine=engine,
            context_builder=context_builder,
            repos=repos,
        )
    else:
        logger.warning("ANTHROPIC_API_KEY is not set; chat is disabled")
        app.state.agent = None

    yield

    db.close()


app = FastAPI(
    title="ledgerchat",
    description="Personal finance ledger with a tool-using chat assistant",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware using Settings.FRONTEND_URL
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from ledgerchat.api.routes import router as api_router

app.include_router(api_router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
