# ============================================================================
# api/main.py
# ============================================================================
"""
FastAPI Backend for Lab Result Intake

Provides the REST API for uploading lab reports, running extraction and
reading results back.

Run:
    uvicorn api.main:app --reload --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from lab_intake.config import IntakeSettings, get_settings
from lab_intake.core import LabStore
from lab_intake.core.intake import IntakeService
from lab_intake.core.orchestrator import ExtractionOrchestrator
from lab_intake.llm import BaseVisionClient, create_client
from lab_intake.storage import LocalBlobStore
from lab_intake.utils import LabIntakeError, UploadRejected, setup_logging

logger = logging.getLogger(__name__)


# error_type -> HTTP status
ERROR_STATUS_CODES = {
    "not_found": 404,
    "unsupported_media_type": 415,
    "invalid_upload": 400,
    "conflict": 409,
    "storage_error": 500,
    "extraction_error": 502,
    "schema_violation": 502,
    "configuration_error": 500,
    "persistence_error": 500,
}


# ============================================================================
# Models
# ============================================================================

class ExtractRequest(BaseModel):
    labResultId: Optional[str] = None


def error_response(status_code: int, error: str, error_type: str, details: Optional[str] = None):
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "errorType": error_type, "details": details},
    )


# ============================================================================
# Application
# ============================================================================

def create_app(
    settings: Optional[IntakeSettings] = None,
    client: Optional[BaseVisionClient] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Service settings (environment if omitted)
        client: Vision client; created from ``settings.llm`` if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config = settings or get_settings()
        setup_logging(
            level=config.logging.LOG_LEVEL,
            log_file=config.logging.LOG_FILE,
            format_json=config.logging.LOG_JSON,
        )
        config.storage.create_directories()

        store = LabStore(config.storage.DATABASE_PATH)
        blob_store = LocalBlobStore(config.storage.UPLOAD_DIR)
        vision_client = client or create_client(config.llm)

        app.state.intake = IntakeService(store, blob_store, config)
        app.state.orchestrator = ExtractionOrchestrator(store, blob_store, vision_client, config)
        app.state.client = vision_client

        logger.info(
            f"Lab intake API ready (backend={vision_client.backend_type.value}, "
            f"model={vision_client.model_name})"
        )
        yield

        await vision_client.close()

    app = FastAPI(
        title="Lab Result Intake API",
        description="Upload lab reports and extract structured test values",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LabIntakeError)
    async def intake_error_handler(request: Request, exc: LabIntakeError):
        status_code = ERROR_STATUS_CODES.get(exc.error_type, 500)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error_response(status_code, exc.message, exc.error_type, type(exc).__name__)

    # ========================================================================
    # Endpoints
    # ========================================================================

    @app.get("/api/health")
    async def health():
        """Health check for monitoring. 503 when the model backend is unavailable."""
        check = await app.state.client.health_check()
        body = {
            "status": "healthy" if check["healthy"] else "unhealthy",
            "backend": check["backend"],
            "model": check["model"],
            "details": check["details"],
        }
        return JSONResponse(status_code=200 if check["healthy"] else 503, content=body)

    @app.post("/api/upload")
    async def upload_document(file: Optional[UploadFile] = File(None)):
        """
        Upload a lab report (PDF, JPEG or PNG, at most 10MB).

        Creates a PENDING lab result; call /api/extract to process it.
        """
        if file is None or not file.filename:
            raise UploadRejected("No file provided or invalid file")

        content = await file.read()
        lab_result = app.state.intake.upload(content, file.filename, file.content_type)

        return {
            "id": lab_result.id,
            "fileName": file.filename,
            "status": lab_result.status.value,
            "message": "File uploaded successfully",
        }

    @app.post("/api/extract")
    async def extract(request: ExtractRequest):
        """Run vision extraction for an uploaded lab result."""
        if not request.labResultId:
            return error_response(400, "Lab result ID is required", "invalid_request")
        try:
            uuid.UUID(request.labResultId)
        except ValueError:
            return error_response(400, "Invalid lab result ID", "invalid_request", request.labResultId)

        outcome = await app.state.orchestrator.extract(request.labResultId)

        return {
            "status": outcome.status.value,
            "message": "Extraction completed successfully",
            "labResultId": outcome.lab_result_id,
            "patientId": outcome.patient_id,
            "testValuesCount": outcome.test_values_count,
            "testTypeMatched": outcome.test_type_matched,
            "unmatchedCodes": outcome.unmatched_codes,
        }

    @app.get("/api/upload/status/{lab_result_id}")
    async def upload_status(lab_result_id: str):
        """Current status and extracted contents of a lab result."""
        return app.state.intake.get_status(lab_result_id)

    @app.delete("/api/lab-results/{lab_result_id}")
    async def delete_lab_result(lab_result_id: str):
        """Soft-delete a lab result and remove its stored document."""
        app.state.intake.delete(lab_result_id)
        return {"id": lab_result_id, "message": "Lab result deleted"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
