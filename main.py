import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import numpy as np
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field, ValidationError

import config
from analysis_service import ImageRejectedError, SolarAnalysisService
from database import AnalysisStore
from gemini_client import GeminiClient, RetryPolicy
from logging_config import setup_logging
from models import RoofInput
from panel_layout import pack_panels, parse_zoom_level
from pdf_generator import generate_analysis_pdf
from roof_sections import section_roof

setup_logging(config.LOG_LEVEL, json_output=config.LOG_FORMAT == "json")
logger = logging.getLogger(__name__)

DEFAULT_USER_ID = 1
DEFAULT_USERNAME = "User"
ASSISTANT_USERNAME = "AI Assistant"


class LayoutRequest(BaseModel):
    roof_type: str
    roof_area: float
    zoom_level: str = "medium"


class ChatSendRequest(BaseModel):
    message: str = ""
    category: str = "general"


class AIChatRequest(BaseModel):
    message: str = ""
    conversation_history: List[str] = Field(default_factory=list)


def build_model_client() -> Optional[GeminiClient]:
    """Gemini client from configuration, or None when no API key is set"""
    if not config.GOOGLE_API_KEY:
        logger.warning("GOOGLE_API_KEY not set, analyses will use the fallback engine")
        return None
    return GeminiClient(
        api_key=config.GOOGLE_API_KEY,
        model=config.GEMINI_MODEL,
        timeout_seconds=config.AI_TIMEOUT_SECONDS,
        retry_policy=RetryPolicy(max_attempts=config.AI_MAX_ATTEMPTS),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler"""
    # Startup
    store = AnalysisStore(config.DATABASE_FILE)
    store.init_schema()
    app.state.store = store
    app.state.analysis_service = SolarAnalysisService(build_model_client(), np.random.default_rng())

    logger.info("SolarScope analyzer started on port %d", config.PORT)
    yield
    # Shutdown
    logger.info("Shutting down")


# Initialize FastAPI app
app = FastAPI(title="SolarScope Analyzer", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded images are served back to the client for overlays
os.makedirs(config.UPLOAD_DIR, exist_ok=True)
os.makedirs(config.STATIC_DIR, exist_ok=True)
app.mount("/static", StaticFiles(directory=config.STATIC_DIR), name="static")


def get_store(request: Request) -> AnalysisStore:
    return request.app.state.store


def get_analysis_service(request: Request) -> SolarAnalysisService:
    return request.app.state.analysis_service


async def save_upload(image: Optional[UploadFile], prefix: str) -> str:
    """Check an uploaded image and write it under UPLOAD_DIR, returning its path"""
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="No image file provided")

    file_extension = image.filename.rsplit('.', 1)[-1].lower() if '.' in image.filename else ''
    if file_extension not in config.ALLOWED_IMAGE_EXTENSIONS:
        allowed = ", ".join(sorted(config.ALLOWED_IMAGE_EXTENSIONS))
        raise HTTPException(status_code=400, detail=f"Invalid file type. Allowed: {allowed}")

    content = await image.read()
    if len(content) > config.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File too large. Maximum size is {config.MAX_UPLOAD_MB:g}MB.")
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded image is empty")

    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"{prefix}_{timestamp}_{uuid.uuid4().hex[:8]}.{file_extension}"
    file_path = os.path.join(config.UPLOAD_DIR, filename)

    with open(file_path, "wb") as buffer:
        buffer.write(content)

    logger.info("Saved upload %s (%d bytes) as %s", image.filename, len(content), file_path)
    return file_path


def store_analysis(store: AnalysisStore, user_id: int, analysis_type: str, image_path: str, results: dict):
    """Persist an analysis; storage problems must not cost the user their result"""
    try:
        return store.create_analysis(user_id, analysis_type, image_path, results)
    except Exception:
        logger.exception("Failed to store %s analysis", analysis_type)
        return None


# Health check endpoint for uptime monitoring
@app.api_route("/health", methods=["GET", "HEAD"])
async def health_check():
    """Health check endpoint for monitoring services (supports GET and HEAD)"""
    return {"status": "ok", "service": "solarscope-analyzer"}


@app.get("/api/health")
async def api_health(service: SolarAnalysisService = Depends(get_analysis_service)):
    return {
        "status": "ok",
        "service": "solarscope-analyzer",
        "ai_configured": service.client is not None,
        "timestamp": datetime.now().isoformat(),
    }


@app.post("/api/analyze/installation")
async def analyze_installation(
    image: Optional[UploadFile] = File(None),
    user_id: int = Form(DEFAULT_USER_ID),
    roof_size: Optional[str] = Form(None),
    roof_shape: str = Form("auto-detect"),
    panel_size: str = Form("auto-optimize"),
    store: AnalysisStore = Depends(get_store),
    service: SolarAnalysisService = Depends(get_analysis_service),
):
    """
    Upload a rooftop photo and plan a solar installation

    Returns the stored analysis record (or null if storing failed) and the results
    """
    try:
        roof_input = RoofInput(
            roof_size=float(roof_size) if roof_size not in (None, "") else None,
            roof_shape=roof_shape,
            panel_size=panel_size,
        )
    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid roof details: {e}")

    file_path = await save_upload(image, "installation")

    try:
        result = await run_in_threadpool(service.analyze_installation, file_path, roof_input)
        results = result.model_dump(mode="json")
        analysis = store_analysis(store, user_id, "installation", file_path, results)
        return {"analysis": analysis, "results": results}

    except ImageRejectedError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Installation analysis failed")
        raise HTTPException(status_code=500, detail=f"Failed to analyze installation: {str(e)}")


@app.post("/api/analyze/fault-detection")
async def analyze_fault_detection(
    image: Optional[UploadFile] = File(None),
    user_id: int = Form(DEFAULT_USER_ID),
    store: AnalysisStore = Depends(get_store),
    service: SolarAnalysisService = Depends(get_analysis_service),
):
    """Upload a solar panel photo and inspect it for faults"""
    file_path = await save_upload(image, "fault")

    try:
        result = await run_in_threadpool(service.analyze_faults, file_path, image.filename)
        results = result.model_dump(mode="json")
        analysis = store_analysis(store, user_id, "fault-detection", file_path, results)
        return {"analysis": analysis, "results": results}

    except ImageRejectedError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Fault analysis failed")
        raise HTTPException(status_code=500, detail=f"Failed to analyze faults: {str(e)}")


@app.post("/api/layout/calculate")
async def calculate_layout(payload: LayoutRequest):
    """Section a roof and pack panels on it without an image"""
    try:
        roof = section_roof(payload.roof_type, payload.roof_area)
        zoom_level = parse_zoom_level(payload.zoom_level)
        regions = pack_panels(roof.roof_type, roof.sections, roof.total_panels, zoom_level)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "roof_type": roof.roof_type.value,
        "zoom_level": zoom_level.value,
        "sections": [section.model_dump(mode="json") for section in roof.sections],
        "total_usable_area": roof.total_usable_area,
        "total_panels": roof.total_panels,
        "overall_efficiency": roof.overall_efficiency,
        "placed_panels": len(regions),
        "regions": [region.model_dump(mode="json") for region in regions],
    }


@app.get("/api/analyses/{user_id}")
async def list_analyses(user_id: int, store: AnalysisStore = Depends(get_store)):
    try:
        return store.get_analyses_by_user(user_id)
    except Exception as e:
        logger.exception("Failed to list analyses")
        raise HTTPException(status_code=500, detail=f"Failed to fetch analyses: {str(e)}")


@app.get("/api/analysis/{analysis_id}")
async def get_analysis(analysis_id: int, store: AnalysisStore = Depends(get_store)):
    analysis = store.get_analysis(analysis_id)
    if not analysis:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return analysis


@app.get("/api/analysis/{analysis_id}/pdf")
async def download_analysis_pdf(analysis_id: int, store: AnalysisStore = Depends(get_store)):
    """Generate PDF report for an analysis"""
    try:
        analysis = store.get_analysis(analysis_id)
        if not analysis:
            raise HTTPException(status_code=404, detail="Analysis not found")

        pdf_buffer = await run_in_threadpool(generate_analysis_pdf, analysis)

        return StreamingResponse(
            pdf_buffer,
            media_type="application/pdf",
            headers={
                "Content-Disposition": f"attachment; filename=SolarScope_Analysis_{analysis_id}.pdf"
            }
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("PDF generation failed for analysis %s", analysis_id)
        raise HTTPException(status_code=500, detail=f"Failed to generate PDF: {str(e)}")


@app.get("/api/chat/messages")
async def get_chat_messages(limit: int = Query(50, ge=1, le=500), store: AnalysisStore = Depends(get_store)):
    try:
        return store.get_chat_messages(limit)
    except Exception as e:
        logger.exception("Failed to fetch chat messages")
        raise HTTPException(status_code=500, detail=f"Failed to fetch chat messages: {str(e)}")


@app.post("/api/chat/send")
async def send_chat_message(payload: ChatSendRequest, store: AnalysisStore = Depends(get_store)):
    message = payload.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message content is required")

    try:
        return store.create_chat_message(DEFAULT_USER_ID, DEFAULT_USERNAME, message, "user", payload.category)
    except Exception as e:
        logger.exception("Failed to store chat message")
        raise HTTPException(status_code=500, detail=f"Failed to send message: {str(e)}")


@app.post("/api/ai/chat")
async def ai_chat(
    payload: AIChatRequest,
    store: AnalysisStore = Depends(get_store),
    service: SolarAnalysisService = Depends(get_analysis_service),
):
    """Ask the solar advisor; both sides of the exchange go into the transcript"""
    message = payload.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message content is required")

    try:
        store.create_chat_message(DEFAULT_USER_ID, DEFAULT_USERNAME, message, "user", "general")
    except Exception:
        logger.warning("Failed to store user chat message", exc_info=True)

    reply = await run_in_threadpool(service.chat, message, payload.conversation_history)

    try:
        store.create_chat_message(DEFAULT_USER_ID, ASSISTANT_USERNAME, reply.response, "ai", reply.category)
    except Exception:
        logger.warning("Failed to store AI chat reply", exc_info=True)

    return reply.model_dump()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT, reload=not config.IS_PRODUCTION)
