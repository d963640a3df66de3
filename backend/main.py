import logging
import math
import os
import sys
from pathlib import Path
from typing import Dict, List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import psycopg2
from dotenv import load_dotenv

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))


load_dotenv()

def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def _parse_origins(raw_value: str) -> List[str]:
    return [origin.strip() for origin in raw_value.split(",") if origin.strip()]


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "learning_db"),
    user=os.getenv("DB_USER", "learning_user"),
    password=os.getenv("DB_PASSWORD", "learning_pass"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ALLOW_ORIGINS = _parse_origins(os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5173"))

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("memberships")


def get_conn():
    return psycopg2.connect(**DB_CFG)


from backend import app_context  # noqa: E402
from backend.app.routes.memberships import install_exception_handlers  # noqa: E402
from backend.app.routes.memberships import router as memberships_router  # noqa: E402
from backend.app.services.memberships import get_membership_config  # noqa: E402


app_context.configure(get_conn=get_conn)

app = FastAPI(title="Learning Platform Memberships API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_exception_handlers(app, expose_errors=get_membership_config().expose_errors)

app.include_router(memberships_router)


@app.get("/api/healthz")
def healthz() -> Dict[str, str]:
    return {"status": "ok"}


@app.on_event("startup")
def _log_startup() -> None:
    logger.info(
        "Memberships API ready prefix=%s db=%s:%s/%s",
        get_membership_config().api_prefix,
        DB_CFG["host"],
        DB_CFG["port"],
        DB_CFG["dbname"],
    )
