"""
AWS API Gateway transport.

Thin wrapper over the boto3 ``apigateway`` client. Every call goes through
one place that translates botocore failures into the deployer error
taxonomy:

- NotFoundException -> GatewayNotFound
- ConflictException -> GatewayConflict
- anything else     -> TransportError

Timeouts and retries are botocore's; they are configured once on the
client and never repeated here.
"""

import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config.schema import AWSEnvironment
from .base import ConfigurationError, GatewayConflict, GatewayNotFound, TransportError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NotFoundException", "ResourceNotFoundException"}
CONFLICT_CODES = {"ConflictException"}


def create_client(environment: AWSEnvironment):
    """Create a boto3 API Gateway client for an environment.

    Args:
        environment: Region, credentials and timeout settings

    Returns:
        boto3 ``apigateway`` client

    Raises:
        ConfigurationError: If the session or client cannot be created
    """
    session_kwargs: Dict[str, Any] = {"region_name": environment.region}
    if environment.profile_name:
        session_kwargs["profile_name"] = environment.profile_name

    client_kwargs: Dict[str, Any] = {
        "config": Config(
            connect_timeout=environment.connect_timeout,
            read_timeout=environment.read_timeout,
            retries={"max_attempts": environment.max_attempts, "mode": "standard"},
        ),
    }
    if environment.access_key and environment.secret_key:
        client_kwargs["aws_access_key_id"] = environment.access_key
        client_kwargs["aws_secret_access_key"] = environment.secret_key

    try:
        session = boto3.Session(**session_kwargs)
        return session.client("apigateway", **client_kwargs)
    except BotoCoreError as e:
        raise ConfigurationError(f"Cannot create AWS API Gateway client: {e}") from e


class APIGatewayTransport:
    """Gateway calls used by the reconciler, discovery and teardown."""

    def __init__(self, client):
        self._client = client

    @classmethod
    def from_environment(cls, environment: AWSEnvironment) -> "APIGatewayTransport":
        return cls(create_client(environment))

    def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        logger.debug("apigateway.%s %s", operation, _describe(kwargs))
        try:
            return getattr(self._client, operation)(**kwargs)
        except ClientError as e:
            raise _translate(operation, e) from e
        except BotoCoreError as e:
            raise TransportError(f"{operation} failed: {e}", operation=operation) from e

    def _collect(self, operation: str, item_key: str = "items", **kwargs) -> List[Dict[str, Any]]:
        """Collect every item of a paginated listing."""
        logger.debug("apigateway.%s (paginated) %s", operation, _describe(kwargs))
        items: List[Dict[str, Any]] = []
        try:
            if self._client.can_paginate(operation):
                paginator = self._client.get_paginator(operation)
                for page in paginator.paginate(**kwargs):
                    items.extend(page.get(item_key, []))
                return items

            position: Optional[str] = None
            while True:
                page_kwargs = dict(kwargs)
                if position:
                    page_kwargs["position"] = position
                page = getattr(self._client, operation)(**page_kwargs)
                items.extend(page.get(item_key, []))
                position = page.get("position")
                if not position:
                    return items
        except ClientError as e:
            raise _translate(operation, e) from e
        except BotoCoreError as e:
            raise TransportError(f"{operation} failed: {e}", operation=operation) from e

    # REST APIs

    def import_definition(self, body: str) -> Dict[str, Any]:
        return self._call("import_rest_api", body=body.encode("utf-8"), failOnWarnings=False)

    def overwrite_definition(self, api_id: str, body: str) -> Dict[str, Any]:
        return self._call(
            "put_rest_api",
            restApiId=api_id,
            mode="overwrite",
            body=body.encode("utf-8"),
            failOnWarnings=False,
        )

    def get_api(self, api_id: str) -> Dict[str, Any]:
        return self._call("get_rest_api", restApiId=api_id)

    def get_apis(self) -> List[Dict[str, Any]]:
        return self._collect("get_rest_apis")

    def delete_api(self, api_id: str) -> None:
        self._call("delete_rest_api", restApiId=api_id)

    def export_definition(self, api_id: str, stage_name: str,
                          export_type: str = "oas30",
                          accepts: str = "application/json") -> str:
        response = self._call(
            "get_export",
            restApiId=api_id,
            stageName=stage_name,
            exportType=export_type,
            accepts=accepts,
        )
        body = response["body"]
        return body.read().decode("utf-8") if hasattr(body, "read") else body

    # Resources and methods

    def get_resources(self, api_id: str) -> List[Dict[str, Any]]:
        return self._collect("get_resources", restApiId=api_id, limit=500)

    def get_method(self, api_id: str, resource_id: str, http_method: str) -> Dict[str, Any]:
        return self._call("get_method", restApiId=api_id, resourceId=resource_id, httpMethod=http_method)

    def put_method(self, api_id: str, resource_id: str, http_method: str,
                   authorization_type: str = "NONE") -> Dict[str, Any]:
        return self._call(
            "put_method",
            restApiId=api_id,
            resourceId=resource_id,
            httpMethod=http_method,
            authorizationType=authorization_type,
        )

    def patch_method(self, api_id: str, resource_id: str, http_method: str,
                     patch_operations: List[Dict[str, str]]) -> Dict[str, Any]:
        return self._call(
            "update_method",
            restApiId=api_id,
            resourceId=resource_id,
            httpMethod=http_method,
            patchOperations=patch_operations,
        )

    def put_method_response(self, api_id: str, resource_id: str, http_method: str,
                            status_code: str,
                            response_parameters: Dict[str, bool]) -> Dict[str, Any]:
        return self._call(
            "put_method_response",
            restApiId=api_id,
            resourceId=resource_id,
            httpMethod=http_method,
            statusCode=status_code,
            responseParameters=response_parameters,
        )

    def update_method_response(self, api_id: str, resource_id: str, http_method: str,
                               status_code: str,
                               patch_operations: List[Dict[str, str]]) -> Dict[str, Any]:
        return self._call(
            "update_method_response",
            restApiId=api_id,
            resourceId=resource_id,
            httpMethod=http_method,
            statusCode=status_code,
            patchOperations=patch_operations,
        )

    # Integrations

    def put_integration(self, api_id: str, resource_id: str, http_method: str,
                        integration_type: str,
                        uri: Optional[str] = None,
                        integration_http_method: Optional[str] = None,
                        request_parameters: Optional[Dict[str, str]] = None,
                        request_templates: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "restApiId": api_id,
            "resourceId": resource_id,
            "httpMethod": http_method,
            "type": integration_type,
        }
        if uri is not None:
            kwargs["uri"] = uri
        if integration_http_method is not None:
            kwargs["integrationHttpMethod"] = integration_http_method
        if request_parameters is not None:
            kwargs["requestParameters"] = request_parameters
        if request_templates is not None:
            kwargs["requestTemplates"] = request_templates
        return self._call("put_integration", **kwargs)

    def get_integration(self, api_id: str, resource_id: str, http_method: str) -> Dict[str, Any]:
        return self._call("get_integration", restApiId=api_id, resourceId=resource_id, httpMethod=http_method)

    def put_integration_response(self, api_id: str, resource_id: str, http_method: str,
                                 status_code: str,
                                 response_templates: Optional[Dict[str, str]] = None,
                                 response_parameters: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "restApiId": api_id,
            "resourceId": resource_id,
            "httpMethod": http_method,
            "statusCode": status_code,
        }
        if response_templates is not None:
            kwargs["responseTemplates"] = response_templates
        if response_parameters is not None:
            kwargs["responseParameters"] = response_parameters
        return self._call("put_integration_response", **kwargs)

    def update_integration_response(self, api_id: str, resource_id: str, http_method: str,
                                    status_code: str,
                                    patch_operations: List[Dict[str, str]]) -> Dict[str, Any]:
        return self._call(
            "update_integration_response",
            restApiId=api_id,
            resourceId=resource_id,
            httpMethod=http_method,
            statusCode=status_code,
            patchOperations=patch_operations,
        )

    # Authorizers

    def get_authorizers(self, api_id: str) -> List[Dict[str, Any]]:
        return self._collect("get_authorizers", restApiId=api_id)

    def create_authorizer(self, api_id: str, name: str, authorizer_uri: str,
                          credentials: str,
                          identity_source: str = "method.request.header.Authorization") -> Dict[str, Any]:
        return self._call(
            "create_authorizer",
            restApiId=api_id,
            name=name,
            type="TOKEN",
            authorizerUri=authorizer_uri,
            authorizerCredentials=credentials,
            identitySource=identity_source,
        )

    def delete_authorizer(self, api_id: str, authorizer_id: str) -> None:
        self._call("delete_authorizer", restApiId=api_id, authorizerId=authorizer_id)

    # Deployments and stages

    def create_deployment(self, api_id: str, stage_name: str) -> Dict[str, Any]:
        return self._call("create_deployment", restApiId=api_id, stageName=stage_name)

    def get_deployments(self, api_id: str) -> List[Dict[str, Any]]:
        return self._collect("get_deployments", restApiId=api_id)

    def delete_deployment(self, api_id: str, deployment_id: str) -> None:
        self._call("delete_deployment", restApiId=api_id, deploymentId=deployment_id)

    def get_stages(self, api_id: str) -> List[Dict[str, Any]]:
        return self._call("get_stages", restApiId=api_id).get("item", [])

    def delete_stage(self, api_id: str, stage_name: str) -> None:
        self._call("delete_stage", restApiId=api_id, stageName=stage_name)


def _translate(operation: str, error: ClientError) -> TransportError:
    code = error.response.get("Error", {}).get("Code", "")
    message = error.response.get("Error", {}).get("Message", "") or str(error)
    if code in NOT_FOUND_CODES:
        return GatewayNotFound(f"{operation}: {message}", operation=operation, code=code)
    if code in CONFLICT_CODES:
        return GatewayConflict(f"{operation}: {message}", operation=operation, code=code)
    return TransportError(f"{operation} failed ({code}): {message}", operation=operation, code=code)


def _describe(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """Call arguments for debug logs, without definition bodies."""
    return {k: ("<%d bytes>" % len(v) if k == "body" else v) for k, v in kwargs.items()}
