"""
AWS API Gateway deployer.

Deploys control plane APIs to AWS API Gateway (REST APIs):
- Import / reimport of the OpenAPI definition
- Lambda authorizers from API and operation policies
- HTTP integrations to the production endpoint, with CORS
- A single deployment per API on the configured stage

Requires boto3 and AWS credentials.
"""

import logging
from typing import Any, Dict, Optional, Union
from urllib.parse import urlparse

from pydantic import ValidationError

from ..config.schema import APIDefinition, AWSEnvironment
from .base import BaseDeployer, ConfigurationError, DeployerError, ValidationResult
from .reconcile.models import DeploymentReference
from .reconcile.reconciler import GatewayReconciler
from .transport import APIGatewayTransport

logger = logging.getLogger(__name__)

AWS_TYPE = "AWS"
EXECUTION_URL_TEMPLATE = "https://{api_id}.execute-api.{region}.amazonaws.com"
WILDCARD_SUFFIX = "/*"


def validate_endpoint(url: Optional[str]) -> Optional[str]:
    """Return an error message if the URL cannot back an HTTP integration."""
    if not url:
        return "Production endpoint URL is required for AWS API Gateway"
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return f"Production endpoint must be an absolute http(s) URL: {url}"
    return None


def validate_resource_contexts(definition: APIDefinition) -> Optional[str]:
    """Return an error message if a resource path uses an unsupported wildcard.

    A trailing ``/*`` is accepted; transform() rewrites it.
    """
    invalid = []
    for template in definition.uri_templates:
        path = template.uri_template
        if path.endswith(WILDCARD_SUFFIX):
            path = path[:-len(WILDCARD_SUFFIX)]
        if "*" in path:
            invalid.append(f"{template.http_verb.upper()} {template.uri_template}")
    if invalid:
        return "Wildcard resources are not supported by AWS API Gateway: " + ", ".join(invalid)
    return None


def strip_wildcard(path: str) -> str:
    """``/orders/*`` -> ``/orders/``; other paths are returned unchanged."""
    if path.endswith(WILDCARD_SUFFIX):
        return path[:-1]
    return path


class AWSGatewayDeployer(BaseDeployer):
    """Deployer for AWS API Gateway."""

    @property
    def gateway_type(self) -> str:
        return AWS_TYPE

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._environment: Optional[AWSEnvironment] = None
        self._reconciler: Optional[GatewayReconciler] = None

    @property
    def region(self) -> Optional[str]:
        return self._environment.region if self._environment else None

    @property
    def stage(self) -> Optional[str]:
        return self._environment.stage if self._environment else None

    def init(
        self,
        environment: Union[AWSEnvironment, Dict[str, Any]],
        transport: Optional[APIGatewayTransport] = None,
    ) -> None:
        """Prepare the deployer for one AWS account, region and stage.

        Args:
            environment: AWSEnvironment, or the host's additional-properties map
            transport: Gateway transport to use instead of a new boto3 client

        Raises:
            ConfigurationError: If the settings are invalid or the client
                cannot be created
        """
        try:
            if not isinstance(environment, AWSEnvironment):
                environment = AWSEnvironment.from_properties(environment)
        except ValidationError as e:
            raise ConfigurationError(
                f"Error occurred while initializing AWS Gateway Deployer: {e}"
            ) from e

        if transport is None:
            transport = APIGatewayTransport.from_environment(environment)

        self._environment = environment
        self._reconciler = GatewayReconciler(transport, environment.region, environment.stage)
        self._initialized = True
        logger.debug("AWS deployer ready for region %s, stage %s", environment.region, environment.stage)

    @property
    def reconciler(self) -> GatewayReconciler:
        self._require_initialized()
        return self._reconciler

    def deploy(self, definition: APIDefinition, reference: Optional[str] = None) -> str:
        """Deploy an API to AWS API Gateway.

        Args:
            definition: API to deploy
            reference: Reference returned by a previous deploy, or None for
                a first deployment

        Returns:
            Reference to persist and pass to later deploy/undeploy calls

        Raises:
            DeployerError: If deployment fails. First deployments are rolled
                back; RollbackError means the rollback failed too.
        """
        reconciler = self.reconciler
        if reference is None:
            logger.info("Deploying API %s to AWS API Gateway", definition.name)
            return reconciler.import_api(definition).to_string()

        logger.info("Redeploying API %s to AWS API Gateway", definition.name)
        return reconciler.reimport_api(self._parse_reference(reference), definition).to_string()

    def undeploy(self, reference: str, delete: bool = False) -> bool:
        """Remove the API's stage and deployments; delete the API when ``delete``."""
        self.reconciler.teardown(self._parse_reference(reference), delete=delete)
        return True

    def validate(self, definition: APIDefinition) -> ValidationResult:
        """Check the endpoint and resource paths against gateway limitations."""
        checks = [
            validate_endpoint(definition.production_endpoint()),
            validate_resource_contexts(definition),
        ]
        errors = [error for error in checks if error is not None]
        return ValidationResult(valid=not errors, errors=errors)

    def get_execution_url(self, reference: str) -> str:
        self._require_initialized()
        api_id = self._parse_reference(reference).api_id
        base = EXECUTION_URL_TEMPLATE.format(api_id=api_id, region=self.region)
        return f"{base}/{self.stage}"

    def transform(self, definition: APIDefinition) -> APIDefinition:
        """Return a copy with trailing ``/*`` resource paths rewritten to ``/``."""
        transformed = definition.model_copy(deep=True)
        for template in transformed.uri_templates:
            template.uri_template = strip_wildcard(template.uri_template)
        return transformed

    @staticmethod
    def _parse_reference(reference: str) -> DeploymentReference:
        try:
            return DeploymentReference.parse(reference)
        except ValueError as e:
            raise DeployerError(f"Invalid AWS deployment reference: {e}") from e


def deploy_to_aws_api_gateway(
    definition: APIDefinition,
    environment: AWSEnvironment,
    reference: Optional[str] = None,
) -> Dict[str, Any]:
    """Validate, transform and deploy an API in one call.

    Args:
        definition: API to deploy
        environment: Target AWS environment
        reference: Reference of a previous deployment, if any

    Returns:
        Dict with success flag and either reference and URL, or errors
    """
    deployer = AWSGatewayDeployer()
    deployer.init(environment)

    validation = deployer.validate(definition)
    if not validation.valid:
        return {"success": False, "errors": validation.errors}

    try:
        new_reference = deployer.deploy(deployer.transform(definition), reference)
    except DeployerError as e:
        return {"success": False, "errors": [str(e)]}

    return {
        "success": True,
        "reference": new_reference,
        "url": deployer.get_execution_url(new_reference),
    }
