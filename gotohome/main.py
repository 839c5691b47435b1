import logging
import math
import os
from typing import List

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gotohome import app_context
from gotohome.app.routes.billing import router as billing_router
from gotohome.app.routes.entitlements import router as entitlements_router
from gotohome.app.services.billing import validate_configuration

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("gotohome")


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
    dbname=os.getenv("DB_NAME", "gotohome"),
    user=os.getenv("DB_USER", "gotohome"),
    password=os.getenv("DB_PASSWORD", "gotohome"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

CORS_ALLOWED_ORIGINS = _parse_origins(
    os.getenv(
        "CORS_ALLOWED_ORIGINS",
        "https://www.gotohome.com.ua,https://gotohome.com.ua,http://localhost:5173",
    )
)


def get_conn():
    return psycopg2.connect(**DB_CFG)


app_context.configure(get_conn=get_conn)

app = FastAPI(title="GoToHome Payments API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(billing_router)
app.include_router(entitlements_router)


@app.on_event("startup")
def check_gateway_configuration() -> None:
    config = validate_configuration()
    logger.info(
        "Payment gateway configured",
        extra={
            "merchant_domain": config.merchant_domain,
            "service_url": config.service_url,
            "currency": config.currency,
        },
    )


@app.get("/api/healthz")
def healthz():
    return {"ok": True}
