"""
Reconciliation of API definitions onto AWS API Gateway.

Stages:
- ResourceImporter: import / overwrite the definition, read the resource graph
- AuthorizerSynchronizer: create missing and prune orphaned Lambda authorizers
- IntegrationBinder: HTTP integrations, authorizers and CORS per method
- DeploymentCommitter: single live deployment, idempotent teardown
- RollbackHandler: remove an API whose first import failed
"""

from .models import (
    API_SCOPE,
    AuthorizerBindings,
    AuthorizerKey,
    DeploymentReference,
    ExternalMethod,
    ExternalResource,
    ImportOutcome,
    OutcomeKind,
    ResourceGraph,
    ResourceScope,
)
from .importer import ResourceImporter
from .authorizers import AuthorizerSynchronizer, required_authorizers
from .integrations import IntegrationBinder, map_request_parameter
from .deployments import DeploymentCommitter
from .rollback import RollbackHandler
from .reconciler import GatewayReconciler

__all__ = [
    "API_SCOPE",
    "AuthorizerBindings",
    "AuthorizerKey",
    "DeploymentReference",
    "ExternalMethod",
    "ExternalResource",
    "ImportOutcome",
    "OutcomeKind",
    "ResourceGraph",
    "ResourceScope",
    "ResourceImporter",
    "AuthorizerSynchronizer",
    "required_authorizers",
    "IntegrationBinder",
    "map_request_parameter",
    "DeploymentCommitter",
    "RollbackHandler",
    "GatewayReconciler",
]
