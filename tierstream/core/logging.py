"""Structured logging for tierstream."""
import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional


def hash_subject(subject: Optional[str]) -> str:
    """Stable pseudonymous identifier for a credential subject (16 chars)."""
    if not subject:
        return "unknown"
    return hashlib.sha256(subject.encode()).hexdigest()[:16]


class StructuredLogger:
    """Structured JSON logger for relayed requests."""

    def __init__(self, name: str = "tierstream"):
        self.logger = logging.getLogger(name)

    def log_stream(
        self,
        request_id: str,
        use_case: str,
        tier: Optional[str],
        model: Optional[str],
        outcome: str = "success",  # "success", "error" or "cancelled"
        error_code: Optional[str] = None,
        fragments: int = 0,
        latency_ms: int = 0,
        subject: Optional[str] = None,
        level: str = "INFO",
    ):
        """Log a relayed stream summary as one JSON line.

        Args:
            request_id: Unique request identifier
            use_case: Active use case name
            tier: Resolved access tier
            model: Upstream model identifier
            outcome: "success", "error" or "cancelled"
            error_code: Error code if outcome is "error"
            fragments: Number of upstream text fragments forwarded
            latency_ms: Time from stream start to stream end
            subject: Credential subject (logged hashed)
            level: Log level (INFO, WARNING, ERROR)
        """
        log_entry: Dict[str, Any] = {
            "ts": datetime.utcnow().isoformat() + "Z",
            "level": level,
            "request_id": request_id,
            "use_case": use_case,
            "tier": tier,
            "model": model,
            "outcome": outcome,
            "fragments": fragments,
            "latency_ms": latency_ms,
            "account": hash_subject(subject),
        }

        if outcome == "error" and error_code:
            log_entry["error_code"] = error_code

        log_message = json.dumps(log_entry, ensure_ascii=False)

        if level == "ERROR":
            self.logger.error(log_message)
        elif level == "WARNING":
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)


# Global structured logger instance
structured_logger = StructuredLogger()
