"""
Connectors for external API gateways.

Deployers provision control plane APIs onto a gateway:
- AWS API Gateway (REST APIs)

Discovery reads APIs that already exist on a gateway.
"""

from .base import (
    BaseDeployer,
    ValidationResult,
    DeployerError,
    ConfigurationError,
    DefinitionError,
    TransportError,
    GatewayNotFound,
    GatewayConflict,
    ReconciliationError,
    DefinitionImportError,
    ReimportError,
    AuthorizerSyncError,
    IntegrationBindError,
    MappingError,
    DeploymentError,
    RollbackError,
)

from .transport import APIGatewayTransport, create_client

from .aws_api_gateway import (
    AWSGatewayDeployer,
    deploy_to_aws_api_gateway,
)

from .discovery import (
    AWSAPIDiscovery,
    DiscoveredAPI,
    create_reference_artifact,
)

DEPLOYERS = {
    "AWS": AWSGatewayDeployer,
}


def get_deployer(gateway_type: str) -> BaseDeployer:
    """Create an uninitialized deployer for a gateway type.

    Raises:
        ConfigurationError: If the gateway type is not supported
    """
    deployer_class = DEPLOYERS.get(gateway_type.upper())
    if deployer_class is None:
        raise ConfigurationError(
            f"Unsupported gateway type: {gateway_type} (supported: {', '.join(sorted(DEPLOYERS))})"
        )
    return deployer_class()


__all__ = [
    # Base classes
    "BaseDeployer",
    "ValidationResult",
    # Errors
    "DeployerError",
    "ConfigurationError",
    "DefinitionError",
    "TransportError",
    "GatewayNotFound",
    "GatewayConflict",
    "ReconciliationError",
    "DefinitionImportError",
    "ReimportError",
    "AuthorizerSyncError",
    "IntegrationBindError",
    "MappingError",
    "DeploymentError",
    "RollbackError",
    # Transport
    "APIGatewayTransport",
    "create_client",
    # AWS API Gateway
    "AWSGatewayDeployer",
    "deploy_to_aws_api_gateway",
    "AWSAPIDiscovery",
    "DiscoveredAPI",
    "create_reference_artifact",
    # Registry
    "DEPLOYERS",
    "get_deployer",
]
