"""FastAPI app entrypoint for authentiqc."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from authentiqc.analysis.service import AnalysisService, build_analysis_service
from authentiqc.api.ui import render_homepage
from authentiqc.config.settings import Settings, get_settings
from authentiqc.errors import InputValidationError, RepositoryError, TaskNotReadyError
from authentiqc.models import AnalysisSettings, Product, ProductProfile
from authentiqc.repository.base import ProductRepository
from authentiqc.repository.catalog import ProductCatalog
from authentiqc.repository.memory import InMemoryProductRepository
from authentiqc.repository.postgres import PostgresProductRepository
from authentiqc.tasks.models import BackgroundTask
from authentiqc.tasks.projection import (
    ActivityFeed,
    IdentificationDraft,
    build_activity_feed,
    hydrate_identification,
)
from authentiqc.tasks.runner import TaskRunner
from authentiqc.tasks.store import TaskStore

logger = logging.getLogger(__name__)


class IdentifyRequest(BaseModel):
    # Empty falls back to the server-side key from settings.
    api_key: str = ""
    images: list[str] = Field(default_factory=list)
    url: str | None = None
    settings: AnalysisSettings = Field(default_factory=AnalysisSettings)


class QCRequest(BaseModel):
    api_key: str = ""
    images: list[str] = Field(default_factory=list)
    settings: AnalysisSettings = Field(default_factory=AnalysisSettings)
    user_comments: str = ""
    reference_images: list[str] | None = None


class CreateProductRequest(BaseModel):
    profile: ProductProfile
    reference_images: list[str] = Field(default_factory=list)
    creation_settings: AnalysisSettings | None = None


def _build_repository(settings: Settings) -> ProductRepository:
    if not settings.database_url:
        logger.warning("repository event=in_memory reason=no_database_url")
        return InMemoryProductRepository()
    repository = PostgresProductRepository(settings.database_url)
    repository.migrate()
    return repository


def _build_analysis(settings: Settings) -> AnalysisService:
    return build_analysis_service(
        base_url=settings.llm_base_url,
        fast_model=settings.llm_fast_model,
        detailed_model=settings.llm_detailed_model,
        timeout_s=settings.llm_timeout_s,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
    )


async def _sweep_expired_tasks(store: TaskStore, settings: Settings) -> None:
    completed_ttl = timedelta(seconds=settings.completed_task_ttl_s)
    failed_ttl = timedelta(seconds=settings.failed_task_ttl_s)
    while True:
        await asyncio.sleep(settings.task_sweep_interval_s)
        store.prune_expired(completed_ttl=completed_ttl, failed_ttl=failed_ttl)


def create_app(
    *,
    repository: ProductRepository | None = None,
    analysis: AnalysisService | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    logging.getLogger("authentiqc").setLevel(settings.log_level.upper())

    product_repository = repository or _build_repository(settings)
    store = TaskStore()
    catalog = ProductCatalog(product_repository)
    runner = TaskRunner(
        store=store,
        analysis=analysis or _build_analysis(settings),
        repository=product_repository,
        catalog=catalog,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(_sweep_expired_tasks(store, settings))
        await catalog.refresh()
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            if runner.in_flight:
                logger.warning("task_run event=shutdown abandoned=%d", runner.in_flight)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    # Shared objects live in app.state so route handlers can reuse them.
    app.state.settings = settings
    app.state.repository = product_repository
    app.state.store = store
    app.state.catalog = catalog
    app.state.runner = runner

    @app.exception_handler(RepositoryError)
    async def repository_error(_: Request, exc: RepositoryError) -> JSONResponse:
        logger.warning("repository event=error reason=%s", exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    def _credentials(api_key: str) -> str:
        return api_key or settings.resolved_openai_api_key()

    @app.get("/", response_class=HTMLResponse)
    def home() -> str:
        return render_homepage(app_name=settings.app_name)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tasks", response_model=ActivityFeed)
    async def list_tasks(request: Request) -> ActivityFeed:
        return build_activity_feed(request.app.state.store.list())

    @app.get("/tasks/{task_id}", response_model=BackgroundTask)
    async def get_task(task_id: str, request: Request) -> BackgroundTask:
        task = request.app.state.store.get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    def _draft_for(task_id: str, store: TaskStore) -> IdentificationDraft:
        task = store.get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        try:
            return hydrate_identification(task)
        except TaskNotReadyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

    @app.get("/tasks/{task_id}/draft", response_model=IdentificationDraft)
    async def get_identification_draft(task_id: str, request: Request) -> IdentificationDraft:
        return _draft_for(task_id, request.app.state.store)

    @app.delete("/tasks/{task_id}", status_code=204)
    async def dismiss_task(task_id: str, request: Request) -> Response:
        request.app.state.runner.dismiss_task(task_id)
        return Response(status_code=204)

    @app.post("/tasks/identify", response_model=BackgroundTask, status_code=202)
    async def start_identification(payload: IdentifyRequest, request: Request) -> BackgroundTask:
        try:
            return request.app.state.runner.start_identification_task(
                _credentials(payload.api_key),
                payload.images,
                payload.url,
                payload.settings,
            )
        except InputValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

    @app.post("/products/{product_id}/qc", response_model=BackgroundTask, status_code=202)
    async def start_qc(product_id: str, payload: QCRequest, request: Request) -> BackgroundTask:
        product = await request.app.state.repository.get_product(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        try:
            return request.app.state.runner.start_qc_task(
                _credentials(payload.api_key),
                product,
                payload.images,
                payload.settings,
                reference_images=payload.reference_images,
                user_comments=payload.user_comments,
            )
        except InputValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

    @app.get("/products", response_model=list[Product])
    async def list_products(request: Request) -> list[Product]:
        return await request.app.state.catalog.refresh()

    # Declared before /products/{product_id} so "new" is not taken as an id.
    @app.get("/products/new", response_model=IdentificationDraft)
    async def new_product_form(task: str, request: Request) -> IdentificationDraft:
        """Pre-filled creation form for a completed identification task."""
        return _draft_for(task, request.app.state.store)

    @app.get("/products/{product_id}", response_model=Product)
    async def get_product(product_id: str, request: Request) -> Product:
        product = await request.app.state.repository.get_product(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    @app.post("/products", response_model=Product, status_code=201)
    async def create_product(payload: CreateProductRequest, request: Request) -> Product:
        product_repository: ProductRepository = request.app.state.repository
        reference_ids: list[str] = []
        for image in payload.reference_images:
            image_id = str(uuid4())
            await product_repository.save_image(image_id, image)
            reference_ids.append(image_id)
        product = Product(
            id=str(uuid4()),
            profile=payload.profile,
            reference_image_ids=reference_ids,
            creation_settings=payload.creation_settings,
        )
        await product_repository.save_product(product)
        await request.app.state.catalog.refresh()
        logger.info(
            "product event=created product_id=%s reference_images=%d",
            product.id,
            len(reference_ids),
        )
        return product

    @app.delete("/products/{product_id}", status_code=204)
    async def delete_product(product_id: str, request: Request) -> Response:
        await request.app.state.repository.delete_product(product_id)
        await request.app.state.catalog.refresh()
        return Response(status_code=204)

    return app


# Module-level app for `uvicorn authentiqc.api.main:app`.
app = create_app()
