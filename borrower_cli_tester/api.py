"""HTTP surface for triggering runs and reading stored results."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ConfigDict, Field

from borrower_cli_tester.config import HarnessSettings
from borrower_cli_tester.faucet import FaucetClient
from borrower_cli_tester.models.base import Model
from borrower_cli_tester.orchestrator import LifecycleOrchestrator
from borrower_cli_tester.store import ResultStore, StoreError

log = logging.getLogger(__name__)

router = APIRouter()


class ApiResponse(Model):
    """Envelope of every response."""

    success: bool
    message: str
    data: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TestOptions(Model):
    """Optional body of POST /run-test."""

    __test__ = False

    model_config = ConfigDict(frozen=True, extra="ignore")

    mnemonic: str | None = None
    skip_faucet: bool = False


def respond(
    success: bool,
    message: str,
    data: Any = None,
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    """Build an enveloped JSON response, omitting empty data."""
    content = ApiResponse(success=success, message=message, data=data).model_dump(
        mode="json"
    )
    if data is None:
        del content["data"]
    return JSONResponse(status_code=status_code, content=content)


def get_store(request: Request) -> ResultStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> LifecycleOrchestrator:
    return request.app.state.orchestrator


StoreDep = Annotated[ResultStore, Depends(get_store)]
OrchestratorDep = Annotated[LifecycleOrchestrator, Depends(get_orchestrator)]


@router.get("/")
@router.get("/health")
async def health_check() -> JSONResponse:
    return respond(True, "Borrower CLI Test Server is running")


@router.post("/run-test")
async def run_test(
    store: StoreDep,
    orchestrator: OrchestratorDep,
    options: TestOptions | None = None,
) -> JSONResponse:
    options = options or TestOptions()
    try:
        result = await orchestrator.run(
            options.mnemonic, skip_faucet=options.skip_faucet
        )
    except Exception as e:
        log.exception("Test run crashed")
        return respond(
            False,
            f"Test error: {e}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    try:
        await store.save(result)
    except StoreError as e:
        log.error("Failed to save test result to database: %s", e)

    message = "Test completed successfully" if result.success else "Test failed"
    return respond(result.success, message, result.model_dump(mode="json"))


@router.get("/results")
async def get_all_results(store: StoreDep) -> JSONResponse:
    try:
        results = await store.list_all()
    except StoreError as e:
        return respond(
            False,
            f"Database error: {e}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return respond(
        True,
        f"Found {len(results)} test results",
        [result.model_dump(mode="json") for result in results],
    )


@router.get("/results/{result_id}")
async def get_result(result_id: str, store: StoreDep) -> JSONResponse:
    try:
        result = await store.get(result_id)
    except StoreError as e:
        return respond(
            False,
            f"Database error: {e}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if result is None:
        return respond(
            False,
            f"Test result with ID {result_id} not found",
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return respond(True, "Test result found", result.model_dump(mode="json"))


@router.get("/last-successful-mnemonic")
async def get_last_successful_mnemonic(store: StoreDep) -> JSONResponse:
    try:
        result = await store.last_successful()
    except StoreError as e:
        return respond(
            False,
            f"Database error: {e}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if result is None:
        return respond(
            False, "No successful tests found", status_code=status.HTTP_404_NOT_FOUND
        )
    return respond(
        True,
        "Last successful test found",
        result.model_dump(
            mode="json",
            include={"mnemonic", "btc_address", "lava_pubkey", "timestamp"},
        ),
    )


def create_app(settings: HarnessSettings) -> FastAPI:
    """Create the application; the store and faucet session live for its lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        async with (
            ResultStore.open(settings.database_path) as store,
            FaucetClient.from_settings(settings) as faucet,
        ):
            app.state.store = store
            app.state.orchestrator = LifecycleOrchestrator(
                settings=settings, faucet=faucet
            )
            yield

    app = FastAPI(title="Borrower CLI Tester", lifespan=lifespan)
    app.include_router(router)
    return app
