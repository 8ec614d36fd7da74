"""
Structured logging for capture registry operations and audit events.
"""

import logging
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for registry writes, rejections and audits."""

    def __init__(self, name: str = "capture_registry"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_registry_operation(self, operation: str, record_id: int, actor: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a completed registry write."""
        log_details = {"record_id": record_id, "actor": actor}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation(f"registry.{operation}", status, log_details)

    def log_registry_rejection(self, operation: str, error: Any, actor: str, record_id: int = None):
        """Log a rejected registry write with its error kind and code."""
        log_details = {
            "actor": actor,
            "kind": getattr(error, "kind", type(error).__name__),
            "code": getattr(error, "code", None),
        }
        if record_id is not None:
            log_details["record_id"] = record_id

        # Authorization denials are worth a closer look
        level = logging.WARNING if log_details["kind"] == "Unauthorized" else logging.INFO
        self.log_operation(f"registry.{operation}", "rejected", log_details, level=level)

    def log_integrity_report(self, operation: str, issues_found: int, details: Dict[str, Any] = None):
        """Log the outcome of an integrity audit."""
        log_details = {"issues_found": issues_found}
        if details:
            log_details.update(details)

        status = "passed" if issues_found == 0 else "issues_found"
        level = logging.INFO if issues_found == 0 else logging.WARNING
        self.log_operation(f"maintenance.{operation}", status, log_details, level=level)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = ['secret', 'password', 'token']

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, (bytes, bytearray)):
        return bytes(payload).hex()
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
