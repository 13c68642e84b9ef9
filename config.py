import os


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, default))


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, default))


class Settings:
    # SQLite locally, Postgres in production (DATABASE_URL)
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./results.db")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # --- IMPORT / EXPORT ---
    IMPORT_CHUNK_SIZE = _int_env("IMPORT_CHUNK_SIZE", 500)
    EXPORT_CHUNK_SIZE = _int_env("EXPORT_CHUNK_SIZE", 500)

    # --- PAGINATION ---
    DEFAULT_PAGE_LIMIT = _int_env("DEFAULT_PAGE_LIMIT", 100)
    MAX_PAGE_LIMIT = _int_env("MAX_PAGE_LIMIT", 1000)

    # --- ANALYTICS ---
    ANALYSIS_TIMEOUT_SECONDS = _float_env("ANALYSIS_TIMEOUT_SECONDS", 30.0)

    # CPI cutoffs for class distribution (lower bounds, inclusive)
    DISTINCTION_MIN_CPI = _float_env("DISTINCTION_MIN_CPI", 7.5)
    FIRST_CLASS_MIN_CPI = _float_env("FIRST_CLASS_MIN_CPI", 6.0)
    SECOND_CLASS_MIN_CPI = _float_env("SECOND_CLASS_MIN_CPI", 5.0)

    # Transaction levels for server databases; ignored on SQLite
    BATCH_DELETE_ISOLATION = os.getenv("BATCH_DELETE_ISOLATION", "REPEATABLE READ")
    EXPORT_ISOLATION = os.getenv("EXPORT_ISOLATION", "REPEATABLE READ")


settings = Settings()
