"""
config.py – Connection and import settings, read from the environment (or .env).
"""

import os
import sys
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Settings shared by the CLI and the ADO client."""

    # ── Azure DevOps ────────────────────────────────────────
    ADO_ORG_URL: str = os.getenv("ADO_ORG_URL", "").rstrip("/")
    ADO_PROJECT: str = os.getenv("ADO_PROJECT", "")
    ADO_PAT: str = os.getenv("ADO_PAT", "")
    ADO_TEST_PLAN_ID: int = int(os.getenv("ADO_TEST_PLAN_ID", "0"))
    ADO_TEST_SUITE_ID: int = int(os.getenv("ADO_TEST_SUITE_ID", "0"))
    ADO_API_VERSION: str = os.getenv("ADO_API_VERSION", "7.1")
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30"))

    # ── Import behaviour ────────────────────────────────────
    WORK_ITEM_TYPE: str = os.getenv("WORK_ITEM_TYPE", "Test Case")
    IMPORT_BATCH_SIZE: int = int(os.getenv("IMPORT_BATCH_SIZE", "10"))
    LOOKUP_CONCURRENCY: int = int(os.getenv("LOOKUP_CONCURRENCY", "1"))
    FIELD_CACHE_TTL: float = float(os.getenv("FIELD_CACHE_TTL", "3600"))

    MIN_BATCH_SIZE = 1
    MAX_BATCH_SIZE = 50

    @classmethod
    def validate(cls) -> None:
        """Exit before any remote call when required values are missing or out of range."""
        missing: list[str] = []
        if not cls.ADO_ORG_URL:
            missing.append("ADO_ORG_URL")
        if not cls.ADO_PAT:
            missing.append("ADO_PAT")

        if missing:
            sys.exit(
                f"[ERROR] Cannot connect to Azure DevOps, missing: {', '.join(missing)}\n"
                "  → Copy .env.example to .env and fill in all values."
            )

        if not cls.MIN_BATCH_SIZE <= cls.IMPORT_BATCH_SIZE <= cls.MAX_BATCH_SIZE:
            sys.exit(
                f"[ERROR] IMPORT_BATCH_SIZE={cls.IMPORT_BATCH_SIZE} is out of range.\n"
                f"  → Use a value between {cls.MIN_BATCH_SIZE} and {cls.MAX_BATCH_SIZE}."
            )
        if cls.LOOKUP_CONCURRENCY < 1:
            sys.exit("[ERROR] LOOKUP_CONCURRENCY must be at least 1.")
