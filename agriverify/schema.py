"""JSON Schema validation infrastructure.

Validators are built from the schema files shipped in ``agriverify/schemas``
and cached per path. Error messages carry the JSON path of the offending
value so scenario authors can find it.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator

from agriverify.core import SCHEMAS_DIR, load_json


SCENARIO_SCHEMA = "scenario.schema.json"


@lru_cache(maxsize=16)
def schema_validator(schema_path: Path) -> Draft202012Validator:
    """Create (and cache) a validator for a schema file.

    Raises:
        jsonschema.exceptions.SchemaError: if the schema itself is invalid
    """
    schema = load_json(schema_path)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_against_schema(obj: Any, schema_path: Path) -> List[str]:
    """Validate an object against a schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(Path(schema_path))
    errors = sorted(validator.iter_errors(obj), key=lambda e: list(e.absolute_path))
    return [f"{error.json_path}: {error.message}" for error in errors]


def validate_scenario_document(obj: Any) -> List[str]:
    """Validate a scenario document against the bundled scenario schema."""
    return validate_against_schema(obj, SCHEMAS_DIR / SCENARIO_SCHEMA)
