"""Anomaly event log written to JSON Lines."""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from jobmeter.contexts.scraping.results import FetchResult

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))


def log_anomaly_event(
    result: FetchResult,
    first_count: int,
    drop_percentage: Optional[float] = None,
    log_dir: Path = LOGS_PATH,
) -> None:
    """Append an unresolved anomalous drop to ``anomaly_events.txt`` in JSON Lines."""

    log_dir.mkdir(parents=True, exist_ok=True)
    identity = result.identity
    payload = {
        "timestamp": datetime.now().isoformat(),
        "category": identity.category_slug,
        "metric_type": identity.metric_type.value,
        "city": identity.city,
        "experience_level": identity.experience_level.value if identity.experience_level else None,
        "salary_range": identity.salary_range.value if identity.salary_range else None,
        "previous_count": result.previous_count,
        "first_count": first_count,
        "resolved_count": result.count,
        "drop_percentage": drop_percentage,
        "retry_attempts": result.retry_attempts,
    }

    with open(log_dir / "anomaly_events.txt", "a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload) + "\n")
