"""Config module - gateway environment settings and API definition schema."""

from .schema import (
    AWSEnvironment,
    APIDefinition,
    OperationPolicy,
    URITemplate,
)
from .loader import load_environment, load_definition

__all__ = [
    "AWSEnvironment",
    "APIDefinition",
    "OperationPolicy",
    "URITemplate",
    "load_environment",
    "load_definition",
]
