import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.exceptions import BaseAppException, RateLimitedError, StorageUnavailableError

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Configure audit logger (JSON lines)
audit_logger = logging.getLogger("audit")
if not audit_logger.handlers:
    handler = logging.StreamHandler()
    # Keep raw JSON line without extra prefixes
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
audit_logger.setLevel(logging.INFO)
# Do not propagate to root to avoid duplication
audit_logger.propagate = False

api_description = """
## Waitlist API

Collect prioritized email signups for a project from any frontend.

- `POST /api/v1/subscribe` - join a waitlist with the project's API key (`apiKey`, `email`, optional `ref`)
- `GET /api/v1/public/project/{slug}` - resolve a project for the embed script
- `GET /api/v1/projects/{id}/entries`, `GET /api/v1/projects/{id}/stats` - dashboard reads (`X-Admin-Token`)

Joining twice with the same email is not an error: the response carries `alreadyMember: true`
and the same referral code as the first join. Rank is either an exact `position` or a coarse `tier`,
depending on the project's settings.
"""

app = FastAPI(
    title="Waitlist API",
    description=api_description,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# The join endpoint is called from arbitrary third-party sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BaseAppException)
async def app_exception_handler(request: Request, exc: BaseAppException):
    message = exc.message
    headers = None
    if isinstance(exc, StorageUnavailableError):
        logger.error("Storage unavailable on %s %s: %s", request.method, request.url.path, exc.details)
        message = StorageUnavailableError.public_message
    elif isinstance(exc, RateLimitedError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request body"},
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")

@app.get("/")
async def root():
    return {"message": "Waitlist API is running"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}
