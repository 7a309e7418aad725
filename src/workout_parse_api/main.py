"""Main FastAPI application."""
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from workout_parse_api.api.parse_routes import router as parse_router
from workout_parse_api.api.routes import router
from workout_parse_api.errors import ApiError, to_error_response
from workout_parse_api.logging_utils import create_correlation_id


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Workout Parse API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    # Raised from dependencies (authentication) before a route assigns an id
    return to_error_response(exc, create_correlation_id())


app.include_router(router)
app.include_router(parse_router)
