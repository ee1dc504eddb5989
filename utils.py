"""
StudyGenius - Utility Functions
Input validation, upload decoding, PDF metadata, telemetry
"""

import io
import json
import logging
import time
from datetime import datetime
from typing import Dict, Optional

import PyPDF2

from models import PDF_MIME_TYPE, Document

logger = logging.getLogger(__name__)

# Configuration
MAX_QUERY_LENGTH = 500
UPLOAD_ALERT = "Please upload a PDF file."


class UploadRejected(Exception):
    """The uploaded file is not something we accept. No state was changed."""


def validate_input(user_query: str) -> Dict:
    """
    Validate user input
    Returns: {"error": bool, "message": str}
    """
    # Check for empty input
    if not user_query or not user_query.strip():
        return {
            "error": True,
            "message": "Please enter a question or request."
        }

    # Check length
    if len(user_query) > MAX_QUERY_LENGTH:
        return {
            "error": True,
            "message": f"Query too long. Please keep it under {MAX_QUERY_LENGTH} characters."
        }

    return {"error": False}


def count_pdf_pages(payload: bytes) -> Optional[int]:
    """
    Count pages for the dashboard. Returns None if PyPDF2 can't read it;
    the model gets the raw bytes either way.
    """
    try:
        reader = PyPDF2.PdfReader(io.BytesIO(payload))
        return len(reader.pages)
    except Exception:
        logger.info("Could not count pages", exc_info=True)
        return None


def read_upload(filename: str, mime_type: str, payload: bytes) -> Document:
    """
    Turn an uploaded file into a Document.

    Only the declared media type is checked.
    :raises UploadRejected: for anything that is not a PDF.
    """
    if (mime_type or "").split(";")[0].strip().lower() != PDF_MIME_TYPE:
        raise UploadRejected(UPLOAD_ALERT)
    if not filename:
        raise UploadRejected("No file selected")

    return Document.from_bytes(
        name=filename,
        payload=payload,
        mime_type=PDF_MIME_TYPE,
        page_count=count_pdf_pages(payload),
    )


def log_request(path, mode, start_time, status="ok", metadata=None, telemetry_path="telemetry.jsonl"):
    """Log request telemetry to telemetry.jsonl (best-effort, non-fatal if it fails)."""
    log_entry = {
        "timestamp": datetime.now().isoformat(),
        "path": path,
        "mode": mode,
        "status": status,
        "latency_ms": int((time.time() - start_time) * 1000),
        "metadata": metadata or {},
    }
    try:
        with open(telemetry_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(log_entry) + "\n")
    except Exception:
        logger.debug("Telemetry write failed", exc_info=True)
