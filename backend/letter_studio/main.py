import os
from dotenv import load_dotenv
load_dotenv()
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from letter_studio.telemetry import setup_telemetry
from letter_studio.users import router as users_router
from letter_studio.cover_letter_documents import router as cover_letter_documents_router
from letter_studio.cover_letter_generator import router as cover_letter_router
from letter_studio.pdf_generator import router as pdf_router

if os.getenv("ENABLE_TELEMETRY", "false").lower() == "true":
    setup_telemetry()

app = FastAPI(title="Letter Studio API")

app_url = os.getenv("APP_URL", "http://localhost:3000")
origins = [
    app_url,
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Render-Path"],
)

app.include_router(users_router, prefix="/api", tags=["users"])
app.include_router(cover_letter_router, prefix="/api", tags=["cover-letters"])
app.include_router(cover_letter_documents_router, prefix="/api", tags=["cover-letter-documents"])
app.include_router(pdf_router, prefix="/api", tags=["pdf"])


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error for {request.url}: {exc.errors()}")
    logger.error(f"Request body: {exc.body}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc), "body": str(exc.body)[:500]},
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx can hold exception instances that JSONResponse cannot serialise
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


@app.get("/")
def read_root():
    return {"message": "Welcome to the Letter Studio API"}
