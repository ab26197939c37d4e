from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest
from jsonschema.exceptions import ValidationError

from ticket_recon.logging.error_log import ErrorLogBuffer

"""Error log JSON Lines schema contract test."""

ERROR_LOG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["timestamp", "ticket", "requirement", "error_type", "message"],
    "additionalProperties": False,
    "properties": {
        "timestamp": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$"},
        "ticket": {"type": "string", "minLength": 1},
        "requirement": {"type": "integer", "minimum": -1},
        "error_type": {"type": "string", "pattern": "^[A-Z][A-Z0-9_]*$"},
        "message": {"type": "string"},
    },
}


def test_flushed_lines_conform_to_schema(tmp_path: Path):
    buf = ErrorLogBuffer(logs_dir=tmp_path)
    buf.record("WTCI-1001", 1, "QUERY_FAILURE", "Invalid column name 'x'")
    buf.record("WTCI-1001", -1, "MISSING_REFERENCE_FILE", "Excel file not found: OH.xlsx")
    buf.record("<RUN>", -1, "CONNECTION_FAILURE", "Login timeout expired")
    path = buf.flush()
    for raw in path.read_text(encoding="utf-8").splitlines():
        jsonschema.validate(json.loads(raw), ERROR_LOG_SCHEMA)


def test_schema_rejects_extra_key():
    line = {
        "timestamp": "2025-09-25T10:00:00Z",
        "ticket": "WTCI-1",
        "requirement": 1,
        "error_type": "QUERY_FAILURE",
        "message": "x",
        "row": 3,
    }
    with pytest.raises(ValidationError):
        jsonschema.validate(line, ERROR_LOG_SCHEMA)


def test_schema_rejects_lowercase_error_type():
    line = {
        "timestamp": "2025-09-25T10:00:00Z",
        "ticket": "WTCI-1",
        "requirement": 1,
        "error_type": "query_failure",
        "message": "x",
    }
    with pytest.raises(ValidationError):
        jsonschema.validate(line, ERROR_LOG_SCHEMA)
