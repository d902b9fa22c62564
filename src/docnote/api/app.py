"""FastAPI application exposing the DocNote upload services."""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator
from uuid import uuid4

import chromadb
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from docnote.api.schemas import (
    ChunkAckResponse,
    DeleteAllResponse,
    DeleteRecordingResponse,
    FinalizeRequest,
    ProcessAudioResponse,
    RecordingDetailResponse,
    RecordingListResponse,
    RecordingModel,
    UploadResponse,
)
from docnote.config import Settings, get_settings
from docnote.dedupe import RequestDeduplicator, SignatureInputs
from docnote.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from docnote.models import ProcessedRecording
from docnote.services import AIOptions, OpenAIClientFactory, OpenAIConfig, build_recommender, build_transcriber
from docnote.storage import ChromaRecordingStore, LocalObjectStorage, ObjectStorage, RecordingStore, S3ObjectStorage
from docnote.uploads import (
    ChunkFinalizer,
    ChunkIngestor,
    DirectUploadService,
    MissingAudioPart,
    RecordingProcessor,
    SessionRegistry,
    UploadError,
)
from docnote.uploads.pipeline import call_upstream


@dataclass(frozen=True)
class AppDependencies:
    registry: SessionRegistry
    ingestor: ChunkIngestor
    finalizer: ChunkFinalizer
    direct: DirectUploadService
    deduplicator: RequestDeduplicator
    recordings: RecordingStore


def _build_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("docnote_s3_bucket must be set when storage_backend is 's3'")
        return S3ObjectStorage(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
        )
    return LocalObjectStorage(settings.local_storage_dir, settings.public_base_url)


def _build_recordings(settings: Settings) -> RecordingStore:
    chroma_client = None
    if settings.chroma_host:
        chroma_client = chromadb.HttpClient(
            host=settings.chroma_host,
            port=settings.chroma_port or 8000,
            ssl=settings.chroma_ssl,
        )
    return ChromaRecordingStore(
        collection_name=settings.chroma_collection,
        client=chroma_client,
        persist_directory=None if chroma_client else settings.chroma_persist_dir,
    )


def build_dependencies(
    settings: Settings,
    *,
    storage: ObjectStorage | None = None,
    recordings: RecordingStore | None = None,
    processor: RecordingProcessor | None = None,
) -> AppDependencies:
    factory = OpenAIClientFactory(
        OpenAIConfig(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            transcription_model=settings.transcription_model,
            recommendation_model=settings.recommendation_model,
            temperature=settings.recommendation_temperature,
            max_tokens=settings.recommendation_max_tokens,
            use_model=settings.use_model_ai,
        ),
    )
    recordings = recordings or _build_recordings(settings)
    processor = processor or RecordingProcessor(
        storage=storage or _build_storage(settings),
        recordings=recordings,
        transcriber=build_transcriber(factory),
        recommender=build_recommender(factory),
        storage_prefix=settings.storage_prefix,
    )
    registry = SessionRegistry(settings.staging_dir, ttl_seconds=settings.session_ttl_seconds)
    return AppDependencies(
        registry=registry,
        ingestor=ChunkIngestor(registry, max_chunk_bytes=settings.max_upload_bytes),
        finalizer=ChunkFinalizer(registry, processor, settings.output_dir),
        direct=DirectUploadService(processor, settings.incoming_dir, max_bytes=settings.max_upload_bytes),
        deduplicator=RequestDeduplicator(
            window_seconds=settings.dedupe_window_seconds,
            bucket_seconds=settings.dedupe_bucket_seconds,
        ),
        recordings=recordings,
    )


async def _sweep_periodically(deps: AppDependencies, interval: float) -> None:
    logger = get_logger("reaper")
    while True:
        await asyncio.sleep(interval)
        try:
            reaped = await deps.registry.reap_stale()
            expired = deps.deduplicator.sweep()
        except Exception as exc:  # keep the loop alive; next tick retries
            logger.error("reaper.error", detail=str(exc))
            continue
        if reaped or expired:
            logger.info("reaper.sweep", sessions_reaped=len(reaped), dedupe_expired=expired)


def _upload_response(
    result: ProcessedRecording,
    message: str,
    model: type[UploadResponse] = UploadResponse,
    **extra: object,
) -> UploadResponse:
    document = result.document
    return model(
        message=message,
        recording_id=result.recording_id,
        file=RecordingModel.from_document(document, result.recording_id),
        transcript=document.transcript,
        recommendations=document.recommendations,
        **extra,
    )


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        deps.registry.purge_orphaned_staging()
        sweeper = asyncio.create_task(_sweep_periodically(deps, settings.session_sweep_interval_seconds))
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(title="DocNote API", version="0.1.0", lifespan=lifespan)
    app.state.dependencies = deps

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    if settings.storage_backend == "local" and settings.serve_local_storage:
        settings.local_storage_dir.mkdir(parents=True, exist_ok=True)
        app.mount("/files", StaticFiles(directory=str(settings.local_storage_dir)), name="files")

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Correlation-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def _correlation_id(request: Request) -> str:
        return getattr(request.state, "correlation_id", uuid4().hex)

    @app.exception_handler(UploadError)
    async def handle_upload_error(request: Request, exc: UploadError) -> JSONResponse:
        correlation_id = _correlation_id(request)
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("upload.error", correlation_id=correlation_id, error=type(exc).__name__, detail=str(exc))
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc), "correlationId": correlation_id, **exc.details()},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail), "correlationId": _correlation_id(request)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "message": "Invalid request",
                "errors": jsonable_encoder(exc.errors()),
                "correlationId": _correlation_id(request),
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = _correlation_id(request)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Internal Server Error", "correlationId": correlation_id},
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_ingestor(dep: AppDependencies = Depends(get_dependencies)) -> ChunkIngestor:
        return dep.ingestor

    def get_finalizer(dep: AppDependencies = Depends(get_dependencies)) -> ChunkFinalizer:
        return dep.finalizer

    def get_direct(dep: AppDependencies = Depends(get_dependencies)) -> DirectUploadService:
        return dep.direct

    def get_deduplicator(dep: AppDependencies = Depends(get_dependencies)) -> RequestDeduplicator:
        return dep.deduplicator

    def get_recordings(dep: AppDependencies = Depends(get_dependencies)) -> RecordingStore:
        return dep.recordings

    @app.post("/upload-audio-chunk", response_model=ChunkAckResponse)
    async def upload_audio_chunk(
        session_id: str = Form(..., alias="sessionId"),
        chunk_number: int = Form(..., alias="chunkNumber"),
        total_chunks: int = Form(..., alias="totalChunks"),
        filename: str | None = Form(default=None),
        mime_type: str | None = Form(default=None, alias="mimeType"),
        audio: UploadFile | None = File(default=None),
        ingestor: ChunkIngestor = Depends(get_ingestor),
    ) -> ChunkAckResponse:
        try:
            receipt = await ingestor.ingest(
                session_id=session_id,
                chunk_number=chunk_number,
                total_chunks=total_chunks,
                stream=audio,
                original_filename=filename or (audio.filename if audio else "") or "",
                mime_type=mime_type or (audio.content_type if audio else "") or "",
            )
        finally:
            if audio is not None:
                await audio.close()
        return ChunkAckResponse(
            message=f"Chunk {receipt.chunk_number}/{receipt.total_chunks} received",
            session_id=receipt.session_id,
            chunk_number=receipt.chunk_number,
            total_chunks=receipt.total_chunks,
            remaining=receipt.remaining,
        )

    @app.post("/finalize-chunked-upload", response_model=UploadResponse)
    async def finalize_chunked_upload(
        payload: FinalizeRequest,
        finalizer: ChunkFinalizer = Depends(get_finalizer),
    ) -> UploadResponse:
        result = await finalizer.finalize(
            payload.session_id,
            payload.total_chunks,
            run_ai=payload.transcribe,
            ai_options=AIOptions(api_key=payload.api_key),
        )
        return _upload_response(result, "Chunked upload finalized")

    @app.post("/upload-audio", response_model=UploadResponse)
    async def upload_audio(
        audio: UploadFile | None = File(default=None),
        skip_ai: bool = Query(default=False, alias="skipAI"),
        x_user_id: str | None = Header(default=None),
        direct: DirectUploadService = Depends(get_direct),
    ) -> UploadResponse:
        if audio is None:
            raise MissingAudioPart()
        try:
            result = await direct.upload(
                audio,
                filename=audio.filename or "",
                mime_type=audio.content_type,
                run_ai=not skip_ai,
                owner_id=x_user_id,
            )
        finally:
            await audio.close()
        return _upload_response(result, "Audio uploaded")

    @app.post("/process-medical-audio", response_model=ProcessAudioResponse)
    async def process_medical_audio(
        audio: UploadFile | None = File(default=None),
        api_key: str | None = Form(default=None, alias="apiKey"),
        client_id: str | None = Query(default=None, alias="clientId"),
        request_id: str | None = Query(default=None, alias="requestId"),
        x_client_id: str | None = Header(default=None),
        x_request_id: str | None = Header(default=None),
        x_user_id: str | None = Header(default=None),
        direct: DirectUploadService = Depends(get_direct),
        deduplicator: RequestDeduplicator = Depends(get_deduplicator),
    ) -> ProcessAudioResponse:
        if audio is None:
            raise MissingAudioPart()
        inputs = SignatureInputs(
            client_id=x_client_id or client_id,
            request_id=x_request_id or request_id,
            owner_id=x_user_id,
            file_size=audio.size or 0,
        )

        async def process() -> ProcessedRecording:
            return await direct.upload(
                audio,
                filename=audio.filename or "",
                mime_type=audio.content_type,
                run_ai=True,
                ai_options=AIOptions(api_key=api_key),
                owner_id=x_user_id,
            )

        try:
            outcome = await deduplicator.deduplicate_and_process(inputs, process)
        finally:
            await audio.close()

        if outcome.is_duplicate:
            replayed = outcome.result
            return ProcessAudioResponse(
                message="Request already processed",
                recording_id=outcome.recording_id,
                is_duplicate=True,
                file=RecordingModel.from_document(replayed.document, replayed.recording_id) if replayed else None,
                transcript=replayed.document.transcript if replayed else None,
                recommendations=replayed.document.recommendations if replayed else None,
            )
        return _upload_response(outcome.result, "Audio processed", ProcessAudioResponse, is_duplicate=False)

    @app.get("/recordings", response_model=RecordingListResponse)
    async def list_recordings(
        user_id: str | None = Query(default=None, alias="userId"),
        limit: int = Query(default=settings.recordings_default_limit, ge=1, le=settings.recordings_max_limit),
        recordings: RecordingStore = Depends(get_recordings),
    ) -> RecordingListResponse:
        rows = await call_upstream("database", recordings.list(owner_id=user_id, limit=limit))
        items = [RecordingModel.from_document(row.document, row.recording_id) for row in rows]
        return RecordingListResponse(message="Recordings retrieved", count=len(items), recordings=items)

    @app.delete("/recordings/all", response_model=DeleteAllResponse)
    async def delete_all_recordings(
        user_id: str | None = Query(default=None, alias="userId"),
        recordings: RecordingStore = Depends(get_recordings),
    ) -> DeleteAllResponse:
        count = await call_upstream("database", recordings.delete_all(owner_id=user_id))
        logger.info("recordings.deleted_all", owner_id=user_id, count=count)
        return DeleteAllResponse(message=f"Deleted {count} recordings", count=count)

    @app.get("/recordings/{recording_id}", response_model=RecordingDetailResponse)
    async def get_recording(
        recording_id: str,
        recordings: RecordingStore = Depends(get_recordings),
    ) -> RecordingDetailResponse:
        row = await call_upstream("database", recordings.get(recording_id))
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
        return RecordingDetailResponse(
            message="Recording retrieved",
            recording=RecordingModel.from_document(row.document, row.recording_id),
        )

    @app.delete("/recordings/{recording_id}", response_model=DeleteRecordingResponse)
    async def delete_recording(
        recording_id: str,
        recordings: RecordingStore = Depends(get_recordings),
    ) -> DeleteRecordingResponse:
        existed = await call_upstream("database", recordings.delete_by_id(recording_id))
        message = "Recording deleted" if existed else "Recording already absent"
        return DeleteRecordingResponse(message=message, id=recording_id)

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from docnote import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready")
    async def readiness(dep: AppDependencies = Depends(get_dependencies)) -> dict[str, object]:
        return {
            "status": "ready",
            "recordings": dep.recordings.count(),
            "activeSessions": len(dep.registry),
        }

    return app


app = create_app()
