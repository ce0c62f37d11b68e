"""Run and record identifier helpers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    # Sortable id without external dependency.
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def generate_record_id() -> str:
    return uuid.uuid4().hex
