"""Validate YAML store documents against the schema."""
from datetime import date
from pathlib import Path
from typing import Any, List, Union

import yaml
from jsonschema import ValidationError, validate

SCHEMA_PATH = Path(__file__).parent / "store_schema.yaml"


def load_schema() -> dict:
    """Load the JSON schema from store_schema.yaml."""
    with open(SCHEMA_PATH) as f:
        return yaml.safe_load(f)


def stringify_dates(data: Any) -> Any:
    """
    Replace date and datetime values with their ISO strings.

    SafeLoader turns unquoted values like 2025-01-10 into date objects;
    the store keeps them as text.
    """
    if isinstance(data, dict):
        return {k: stringify_dates(v) for k, v in data.items()}
    if isinstance(data, list):
        return [stringify_dates(v) for v in data]
    if isinstance(data, date):
        return data.isoformat()
    return data


def validate_document(data: Any, schema: dict) -> List[str]:
    """Validate a parsed store document. Returns list of errors."""
    errors = []
    try:
        validate(instance=data, schema=schema)
    except ValidationError as e:
        errors.append(f"Schema validation error: {e.message}")
        if e.path:
            errors.append(f"  at path: {'.'.join(str(p) for p in e.path)}")
    return errors


def validate_store_file(filepath: Union[str, Path], schema: dict) -> List[str]:
    """Validate a YAML store file. Returns list of errors."""
    try:
        with open(filepath) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        return [f"YAML parse error: {e}"]
    except OSError as e:
        return [f"Error: {e}"]
    if data is None:
        return []
    return validate_document(stringify_dates(data), schema)
