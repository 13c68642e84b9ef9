import logging
import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from config import settings
from database import engine, Base

# --- IMPORT ROUTERS (APIs) ---
from routers import results

# --- IMPORT MODELS (registers tables on Base) ---
from models.results import ExamResult  # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# --- CREATE DATABASE TABLES ---
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Institute Results Engine")

# ==========================================
#   CORS MIDDLEWARE (Portal frontends)
# ==========================================
origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- REGISTER ROUTERS ---
app.include_router(results.router)


@app.get("/health")
def health():
    return {"status": "ok", "database": engine.dialect.name}


logger.info("Results engine ready (database: %s)", engine.dialect.name)
