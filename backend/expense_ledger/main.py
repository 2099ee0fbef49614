"""Expense Ledger: FastAPI Application."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from expense_ledger.config import settings
from expense_ledger.database import async_engine, AsyncSessionLocal

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def run_salary_reset():
    """Zero every employee's monthly salary accumulator."""
    from expense_ledger.services.salary_reset import reset_salary_accumulators

    try:
        summary = await reset_salary_accumulators(AsyncSessionLocal)
        logger.info(f"Monthly salary reset: {summary}")
    except Exception as e:
        logger.error(f"Monthly salary reset failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Expense Ledger API...")

    # Verify DB connection
    try:
        async with async_engine.begin() as conn:
            await conn.exec_driver_sql("SELECT 1")
        logger.info("Database connection verified")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    # Schedule jobs
    if settings.SALARY_RESET_ENABLED:
        scheduler.add_job(
            run_salary_reset, "cron", day=1, hour=0, minute=5, id="salary_reset"
        )
        scheduler.start()
        logger.info("Scheduled jobs started (monthly salary reset)")

    logger.info("Expense Ledger API started successfully")
    yield

    # Shutdown
    if scheduler.running:
        scheduler.shutdown()
    await async_engine.dispose()
    logger.info("Expense Ledger API shut down")


app = FastAPI(
    title="Expense Ledger",
    description="Multi-tenant expense ledger: keeps expenses, account balances, "
    "salary accumulators and labor records consistent",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error as ``{"message": ...}`` for the UI."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Import and register routers
from expense_ledger.routes import accounts, expenses

app.include_router(accounts.router)
app.include_router(expenses.router)


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "Expense Ledger API", "version": "1.0.0"}
