"""Load gateway environments and API definitions from files.

Environment files are YAML mappings of AWSEnvironment fields. Values from
the process environment override the file:

- AWS_REGION
- AWS_API_STAGE
- AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY
- AWS_PROFILE

Definition files are YAML or JSON mappings of APIDefinition fields. A
``definition_file`` key may point at the OpenAPI document instead of
inlining it as ``swagger_definition``.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from ..connectors.base import ConfigurationError, DefinitionError
from .schema import APIDefinition, AWSEnvironment


ENV_OVERRIDES = {
    "AWS_REGION": "region",
    "AWS_API_STAGE": "stage",
    "AWS_ACCESS_KEY_ID": "access_key",
    "AWS_SECRET_ACCESS_KEY": "secret_key",
    "AWS_PROFILE": "profile_name",
}


def _read_mapping(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top level of {path}")
    return data


def load_environment(
    path: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None,
) -> AWSEnvironment:
    """Load AWS environment settings.

    Args:
        path: Optional YAML file with environment settings
        environ: Environment variables to read overrides from (defaults to os.environ)

    Returns:
        Validated AWSEnvironment

    Raises:
        ConfigurationError: If the file is unreadable or settings are invalid
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    if path:
        try:
            values.update(_read_mapping(Path(path)))
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read environment file {path}: {e}") from e

    for var, field_name in ENV_OVERRIDES.items():
        if environ.get(var):
            values[field_name] = environ[var]

    try:
        return AWSEnvironment(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid gateway environment: {e}") from e


def load_definition(path: str) -> APIDefinition:
    """Load an API definition from a YAML or JSON file.

    Args:
        path: Path to the definition file

    Returns:
        Validated APIDefinition

    Raises:
        DefinitionError: If the file is unreadable or the definition is invalid
    """
    definition_path = Path(path)
    try:
        values = _read_mapping(definition_path)
        document = values.pop("definition_file", None)
        if document and "swagger_definition" not in values:
            document_path = definition_path.parent / document
            values["swagger_definition"] = document_path.read_text(encoding="utf-8")
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise DefinitionError(f"Cannot read definition file {path}: {e}") from e

    try:
        return APIDefinition(**values)
    except ValidationError as e:
        raise DefinitionError(f"Invalid API definition in {path}: {e}") from e
