"""Service metadata routes."""
import os
import subprocess
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from workout_parse_api.config import settings


SERVICE_NAME = "workout-parse-api"
BUILD_TIMESTAMP = datetime.now(timezone.utc).isoformat()


def get_package_version() -> str:
    try:
        return version(SERVICE_NAME)
    except PackageNotFoundError:
        return "0.0.0+local"


def get_git_info() -> Optional[dict]:
    """
    Commit of the running build.

    Deploys set GIT_COMMIT; local checkouts fall back to `git log`.
    """
    commit = os.getenv("GIT_COMMIT")
    if commit:
        return {"commit": commit, "commit_short": commit[:7], "commit_date": os.getenv("GIT_COMMIT_DATE")}

    try:
        result = subprocess.run(
            ["git", "log", "-1", "--format=%H|%cI"],
            cwd=Path(__file__).resolve().parents[3],
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode != 0 or "|" not in result.stdout:
        return None
    commit, date = result.stdout.strip().split("|", 1)
    return {"commit": commit, "commit_short": commit[:7], "commit_date": date}


GIT_INFO = get_git_info()

router = APIRouter()


@router.get("/version")
async def get_version():
    """Service version, build time, configured models and commit."""
    version_info = {
        "service": SERVICE_NAME,
        "version": get_package_version(),
        "environment": settings.ENVIRONMENT,
        "build_timestamp": BUILD_TIMESTAMP,
        "parser_model": settings.PARSER_MODEL,
        "parser_fallback_model": settings.PARSER_FALLBACK_MODEL,
        "agent_model": settings.AGENT_MODEL,
    }
    if GIT_INFO:
        version_info.update({f"git_{key}": value for key, value in GIT_INFO.items()})
    return JSONResponse(version_info)


@router.get("/health")
def health():
    return {"ok": True}
