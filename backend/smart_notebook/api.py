import logging
import traceback

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smart_notebook.config import get_settings
from smart_notebook.dependencies import close_openai
from smart_notebook.errors import ErrorResponse
from smart_notebook.exceptions import NotebookError
from smart_notebook.metrics import metrics_endpoint
from smart_notebook.routers import notebook_ws, tutor

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("smart_notebook")

if not settings.openai_api_key:
    log.warning("OPENAI_API_KEY environment variable not set; tutoring endpoints will answer 500.")

# --- Define FastAPI App ---
app = FastAPI(
    title="Smart Notebook API",
    description="Annotates handwritten math work with AI feedback.",
    version="1.0.0",
)

# --- Add Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Routers ---
app.include_router(tutor.router, prefix="/api")
app.include_router(notebook_ws.router)  # /ws/... paths mounted without extra prefix

# --- Root Endpoint & Metrics ---
app.add_route("/metrics", metrics_endpoint, methods=["GET"])


@app.get("/", tags=["Root"])
async def read_root():
    return {"message": "Welcome to the Smart Notebook API!"}


# --- Global Exception Handlers ---
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    err = ErrorResponse(error_message=str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=err.model_dump())


@app.exception_handler(NotebookError)
async def notebook_exception_handler(request: Request, exc: NotebookError):
    log.error("Notebook error on %s: %s", request.url.path, exc.detail)
    err = ErrorResponse(error_code=exc.code, error_message=exc.detail)
    return JSONResponse(status_code=500, content=err.model_dump())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    log.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    err = ErrorResponse(error_message="Internal server error", technical_details=traceback.format_exception_only(type(exc), exc)[-1].strip())
    return JSONResponse(status_code=500, content=err.model_dump())


# --- Shutdown Event ---
@app.on_event("shutdown")
async def _shutdown_async_clients():
    """Close the shared OpenAI client gracefully."""
    await close_openai()

# To run the API: uvicorn smart_notebook.api:app --reload --port 8001
