"""Asclepius lesion classifier service.

POST an image to ``/predict`` and get back a Cancer / NonCancer verdict;
every verdict is stored and can be listed from ``/predict/histories``.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import artifact_io
from .assembler import ResultAssembler
from .config import Settings, get_settings
from .errors import ClassifierError, InternalError, ServiceUnavailable
from .inference import ClassificationPipeline, Classifier
from .model import ModelLoader, ModelSlot, load_model
from .schemas import HealthResponse, HistoryResponse, PredictResponse
from .store import DocumentStore, build_store
from .upload import read_upload

log = structlog.get_logger()


def configure_logging(level: str = "info", json_logs: bool = False) -> None:
    logging.basicConfig(level=level.upper(), format="%(message)s")
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"status": "fail", "message": message}, status_code=status_code)


class Service:
    """Everything a request needs, built once per application."""

    def __init__(self, settings: Settings, slot: ModelSlot,
                 store: Optional[DocumentStore]):
        self.settings = settings
        self.slot = slot
        self.store = store
        self.assembler = ResultAssembler(
            store, collection=settings.store_collection, timeout=settings.store_timeout
        )
        self._classifier: Classifier | None = None

    @property
    def classifier(self) -> Classifier:
        if not self.slot.ready:
            raise ServiceUnavailable()
        if self._classifier is None:
            pipeline = ClassificationPipeline(
                self.slot.get(),
                image_size=self.settings.image_size,
                threshold=self.settings.threshold,
                max_pixels=self.settings.max_image_pixels,
            )
            self._classifier = Classifier(
                pipeline,
                max_workers=self.settings.max_workers,
                timeout=self.settings.inference_timeout,
            )
        return self._classifier

    def shutdown(self) -> None:
        if self._classifier is not None:
            self._classifier.shutdown()


def create_app(settings: Optional[Settings] = None,
               model_loader: ModelLoader = load_model,
               store: Optional[DocumentStore] = None,
               slot: Optional[ModelSlot] = None) -> FastAPI:
    settings = settings or get_settings()
    if store is None:
        store = build_store(settings)
    service = Service(settings, slot or ModelSlot(), store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        load_task = None
        if not service.slot.ready:
            load_task = asyncio.create_task(
                service.slot.load(
                    settings.model_url,
                    loader=model_loader,
                    timeout=settings.model_load_timeout,
                )
            )
        log.info("service_starting", port=settings.port,
                 store=store.name if store else "none")

        yield

        if load_task is not None and not load_task.done():
            load_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await load_task
        service.shutdown()
        if store is not None:
            await store.close()
        await artifact_io.close()
        log.info("shutdown_complete")

    app = FastAPI(
        title="asclepius-classifier",
        description="Binary skin lesion classification service",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClassifierError)
    async def classifier_error_handler(request: Request, exc: ClassifierError):
        return _fail(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _fail(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _fail(status.HTTP_400_BAD_REQUEST, "Invalid request.")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        log.error("unhandled_error", type=type(exc).__name__, err=str(exc))
        return _fail(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    @app.post("/predict", response_model=PredictResponse,
              status_code=status.HTTP_201_CREATED)
    async def predict(raw: Request):
        request_id = raw.headers.get("X-Request-ID", str(uuid.uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            classifier = service.classifier
            image = await read_upload(raw, settings.max_upload_bytes)
            log.info("upload_received", size=image.size, content_type=image.content_type)

            verdict, suggestion = await classifier.classify(image.content)
            record = await service.assembler.record(verdict, suggestion)
            log.info("prediction_complete", id=record.id, result=record.result.value)
            return PredictResponse(data=record)
        except ClassifierError:
            raise
        except Exception as exc:
            log.error("predict_failed", type=type(exc).__name__, err=str(exc))
            raise InternalError("Internal server error") from exc
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

    @app.get("/predict/histories", response_model=HistoryResponse)
    async def histories():
        items = await service.assembler.history()
        log.info("history_listed", count=len(items))
        return HistoryResponse(data=items)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Readiness probe."""
        body = HealthResponse(
            status="healthy" if service.slot.ready else "unhealthy",
            model_url=settings.model_url,
            store=store.name if store else "none",
            error=service.slot.error,
        )
        if not service.slot.ready:
            return JSONResponse(body.model_dump(), status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
        return body

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    uvicorn.run(
        "asclepius.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
