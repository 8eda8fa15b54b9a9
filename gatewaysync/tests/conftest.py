"""Shared fixtures: an in-memory API Gateway and definition builders."""

import itertools
import json
import re
from typing import Any, Dict, List, Optional

import pytest

from gatewaysync.config.schema import APIDefinition, AWSEnvironment, OperationPolicy, URITemplate
from gatewaysync.connectors.aws_api_gateway import AWSGatewayDeployer
from gatewaysync.connectors.base import GatewayConflict, GatewayNotFound, TransportError
from gatewaysync.connectors.reconcile.models import AUTHORIZER_POLICY_NAME
from gatewaysync.connectors.reconcile.reconciler import GatewayReconciler


REGION = "us-east-1"
STAGE = "prod"
BACKEND = "https://backend.example.com/v1"

LAMBDA_A = "arn:aws:lambda:us-east-1:123456789012:function:auth-a"
LAMBDA_B = "arn:aws:lambda:us-east-1:123456789012:function:auth-b"
LAMBDA_C = "arn:aws:lambda:us-east-1:123456789012:function:auth-c"
ROLE = "arn:aws:iam::123456789012:role/invoke-authorizers"

PARAMETER_LOCATIONS = {"path": "path", "query": "querystring", "header": "header"}
HTTP_VERBS = {"get", "put", "post", "delete", "patch", "head", "options"}


class FakeGateway:
    """In-memory stand-in for APIGatewayTransport.

    Keeps one REST API per id with its resources, methods, authorizers,
    deployments and stages. ``fail(operation)`` makes an operation raise.
    """

    def __init__(self):
        self.apis: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self._failures: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    # Test helpers

    def fail(self, operation: str, error: Optional[Exception] = None, after: int = 0,
             times: Optional[int] = None):
        """Make ``operation`` raise ``error`` after ``after`` successful calls."""
        self._failures[operation] = {
            "error": error or TransportError(f"{operation} failed (injected)", operation=operation),
            "after": after,
            "times": times,
        }

    def called(self, operation: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == operation]

    def api(self, api_id: str) -> Dict[str, Any]:
        return self.apis[api_id]

    def method(self, api_id: str, path: str, verb: str) -> Dict[str, Any]:
        api = self.apis[api_id]
        resource = next(r for r in api["resources"].values() if r["path"] == path)
        return resource["resourceMethods"][verb]

    def _enter(self, operation: str, *args):
        self.calls.append((operation,) + args)
        failure = self._failures.get(operation)
        if failure is None:
            return
        if failure["after"] > 0:
            failure["after"] -= 1
            return
        if failure["times"] is not None:
            if failure["times"] <= 0:
                return
            failure["times"] -= 1
        raise failure["error"]

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):04d}"

    def _get(self, api_id: str) -> Dict[str, Any]:
        if api_id not in self.apis:
            raise GatewayNotFound(f"Invalid API identifier specified {api_id}", code="NotFoundException")
        return self.apis[api_id]

    def _resource(self, api_id: str, resource_id: str) -> Dict[str, Any]:
        resources = self._get(api_id)["resources"]
        if resource_id not in resources:
            raise GatewayNotFound(f"Invalid resource identifier {resource_id}")
        return resources[resource_id]

    def _method(self, api_id: str, resource_id: str, verb: str) -> Dict[str, Any]:
        methods = self._resource(api_id, resource_id)["resourceMethods"]
        if verb not in methods:
            raise GatewayNotFound(f"Invalid method {verb} on {resource_id}")
        return methods[verb]

    def _build_resources(self, body: str) -> Dict[str, Dict[str, Any]]:
        document = json.loads(body)
        if "paths" not in document:
            raise TransportError("Invalid OpenAPI input: no paths", code="BadRequestException")

        by_path: Dict[str, Dict[str, Any]] = {}

        def ensure(path: str) -> Dict[str, Any]:
            if path not in by_path:
                by_path[path] = {"id": self._new_id("res"), "path": path, "resourceMethods": {}}
            return by_path[path]

        ensure("/")
        for path, operations in document["paths"].items():
            segments = [s for s in path.split("/") if s]
            for depth in range(1, len(segments) + 1):
                ensure("/" + "/".join(segments[:depth]))
            resource = ensure(path if segments else "/")
            for verb, operation in operations.items():
                if verb not in HTTP_VERBS:
                    continue
                parameters = {}
                for parameter in operation.get("parameters", []):
                    location = PARAMETER_LOCATIONS[parameter["in"]]
                    key = f"method.request.{location}.{parameter['name']}"
                    parameters[key] = bool(parameter.get("required", False))
                resource["resourceMethods"][verb.upper()] = {
                    "httpMethod": verb.upper(),
                    "authorizationType": "NONE",
                    "requestParameters": parameters,
                    "methodResponses": {"200": {"statusCode": "200"}},
                }
        return {resource["id"]: resource for resource in by_path.values()}

    # REST APIs

    def import_definition(self, body: str) -> Dict[str, Any]:
        self._enter("import_definition")
        api_id = self._new_id("api")
        document = json.loads(body)
        self.apis[api_id] = {
            "rest_api": {
                "id": api_id,
                "name": document.get("info", {}).get("title", api_id),
                "version": document.get("info", {}).get("version"),
            },
            "body": body,
            "resources": self._build_resources(body),
            "authorizers": {},
            "deployments": {},
            "stages": {},
        }
        return dict(self.apis[api_id]["rest_api"], warnings=[])

    def overwrite_definition(self, api_id: str, body: str) -> Dict[str, Any]:
        self._enter("overwrite_definition", api_id)
        api = self._get(api_id)
        api["resources"] = self._build_resources(body)
        api["body"] = body
        return dict(api["rest_api"])

    def get_api(self, api_id: str) -> Dict[str, Any]:
        self._enter("get_api", api_id)
        return dict(self._get(api_id)["rest_api"], ResponseMetadata={"HTTPStatusCode": 200})

    def get_apis(self) -> List[Dict[str, Any]]:
        self._enter("get_apis")
        return [dict(api["rest_api"]) for api in self.apis.values()]

    def delete_api(self, api_id: str) -> None:
        self._enter("delete_api", api_id)
        self._get(api_id)
        del self.apis[api_id]

    def export_definition(self, api_id: str, stage_name: str, export_type: str = "oas30",
                          accepts: str = "application/json") -> str:
        self._enter("export_definition", api_id, stage_name)
        api = self._get(api_id)
        if stage_name not in api["stages"]:
            raise GatewayNotFound(f"Invalid stage identifier specified {stage_name}")
        return api["body"]

    # Resources and methods

    def get_resources(self, api_id: str) -> List[Dict[str, Any]]:
        self._enter("get_resources", api_id)
        return [
            {"id": r["id"], "path": r["path"],
             **({"resourceMethods": {verb: {} for verb in r["resourceMethods"]}} if r["resourceMethods"] else {})}
            for r in self._get(api_id)["resources"].values()
        ]

    def get_method(self, api_id: str, resource_id: str, http_method: str) -> Dict[str, Any]:
        self._enter("get_method", api_id, resource_id, http_method)
        return dict(self._method(api_id, resource_id, http_method))

    def put_method(self, api_id: str, resource_id: str, http_method: str,
                   authorization_type: str = "NONE") -> Dict[str, Any]:
        self._enter("put_method", api_id, resource_id, http_method)
        methods = self._resource(api_id, resource_id)["resourceMethods"]
        if http_method in methods:
            raise GatewayConflict("Method already exists for this resource")
        methods[http_method] = {
            "httpMethod": http_method,
            "authorizationType": authorization_type,
            "requestParameters": {},
            "methodResponses": {},
        }
        return methods[http_method]

    def patch_method(self, api_id: str, resource_id: str, http_method: str,
                     patch_operations: List[Dict[str, str]]) -> Dict[str, Any]:
        self._enter("patch_method", api_id, resource_id, http_method)
        method = self._method(api_id, resource_id, http_method)
        for operation in patch_operations:
            method[operation["path"].lstrip("/")] = operation["value"]
        return method

    def put_method_response(self, api_id: str, resource_id: str, http_method: str,
                            status_code: str, response_parameters: Dict[str, bool]) -> Dict[str, Any]:
        self._enter("put_method_response", api_id, resource_id, http_method, status_code)
        responses = self._method(api_id, resource_id, http_method)["methodResponses"]
        if status_code in responses:
            raise GatewayConflict("Response already exists for this resource")
        responses[status_code] = {"statusCode": status_code, "responseParameters": dict(response_parameters)}
        return responses[status_code]

    def update_method_response(self, api_id: str, resource_id: str, http_method: str,
                               status_code: str, patch_operations: List[Dict[str, str]]) -> Dict[str, Any]:
        self._enter("update_method_response", api_id, resource_id, http_method, status_code)
        response = self._method(api_id, resource_id, http_method)["methodResponses"][status_code]
        parameters = response.setdefault("responseParameters", {})
        for operation in patch_operations:
            name = operation["path"].split("/responseParameters/", 1)[1]
            parameters[name] = operation["value"] == "true"
        return response

    # Integrations

    def put_integration(self, api_id: str, resource_id: str, http_method: str,
                        integration_type: str, uri: Optional[str] = None,
                        integration_http_method: Optional[str] = None,
                        request_parameters: Optional[Dict[str, str]] = None,
                        request_templates: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        self._enter("put_integration", api_id, resource_id, http_method)
        method = self._method(api_id, resource_id, http_method)
        method["methodIntegration"] = {
            "type": integration_type,
            "uri": uri,
            "httpMethod": integration_http_method,
            "requestParameters": dict(request_parameters or {}),
            "requestTemplates": dict(request_templates or {}),
            "integrationResponses": {},
        }
        return method["methodIntegration"]

    def get_integration(self, api_id: str, resource_id: str, http_method: str) -> Dict[str, Any]:
        self._enter("get_integration", api_id, resource_id, http_method)
        method = self._method(api_id, resource_id, http_method)
        if "methodIntegration" not in method:
            raise GatewayNotFound("No integration defined for method")
        return method["methodIntegration"]

    def put_integration_response(self, api_id: str, resource_id: str, http_method: str,
                                 status_code: str,
                                 response_templates: Optional[Dict[str, str]] = None,
                                 response_parameters: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        self._enter("put_integration_response", api_id, resource_id, http_method, status_code)
        method = self._method(api_id, resource_id, http_method)
        if "methodIntegration" not in method:
            raise GatewayNotFound("No integration defined for method")
        responses = method["methodIntegration"]["integrationResponses"]
        responses[status_code] = {
            "statusCode": status_code,
            "responseTemplates": dict(response_templates or {}),
            "responseParameters": dict(response_parameters or {}),
        }
        return responses[status_code]

    def update_integration_response(self, api_id: str, resource_id: str, http_method: str,
                                    status_code: str,
                                    patch_operations: List[Dict[str, str]]) -> Dict[str, Any]:
        self._enter("update_integration_response", api_id, resource_id, http_method, status_code)
        method = self._method(api_id, resource_id, http_method)
        response = method["methodIntegration"]["integrationResponses"][status_code]
        for operation in patch_operations:
            name = operation["path"].split("/responseParameters/", 1)[1]
            response["responseParameters"][name] = operation["value"]
        return response

    # Authorizers

    def get_authorizers(self, api_id: str) -> List[Dict[str, Any]]:
        self._enter("get_authorizers", api_id)
        return [dict(a) for a in self._get(api_id)["authorizers"].values()]

    def create_authorizer(self, api_id: str, name: str, authorizer_uri: str, credentials: str,
                          identity_source: str = "method.request.header.Authorization") -> Dict[str, Any]:
        self._enter("create_authorizer", api_id, name)
        authorizer = {
            "id": self._new_id("auth"),
            "name": name,
            "type": "TOKEN",
            "authorizerUri": authorizer_uri,
            "authorizerCredentials": credentials,
            "identitySource": identity_source,
        }
        self._get(api_id)["authorizers"][authorizer["id"]] = authorizer
        return dict(authorizer)

    def delete_authorizer(self, api_id: str, authorizer_id: str) -> None:
        self._enter("delete_authorizer", api_id, authorizer_id)
        authorizers = self._get(api_id)["authorizers"]
        if authorizer_id not in authorizers:
            raise GatewayNotFound(f"Invalid authorizer identifier {authorizer_id}")
        del authorizers[authorizer_id]

    # Deployments and stages

    def create_deployment(self, api_id: str, stage_name: str) -> Dict[str, Any]:
        self._enter("create_deployment", api_id, stage_name)
        api = self._get(api_id)
        deployment = {"id": self._new_id("dep")}
        api["deployments"][deployment["id"]] = deployment
        api["stages"][stage_name] = {"stageName": stage_name, "deploymentId": deployment["id"]}
        return dict(deployment)

    def get_deployments(self, api_id: str) -> List[Dict[str, Any]]:
        self._enter("get_deployments", api_id)
        return [dict(d) for d in self._get(api_id)["deployments"].values()]

    def delete_deployment(self, api_id: str, deployment_id: str) -> None:
        self._enter("delete_deployment", api_id, deployment_id)
        api = self._get(api_id)
        if deployment_id not in api["deployments"]:
            raise GatewayNotFound(f"Invalid deployment identifier {deployment_id}")
        if any(stage["deploymentId"] == deployment_id for stage in api["stages"].values()):
            raise TransportError(
                "Active stages pointing to this deployment must be moved or deleted",
                code="BadRequestException",
            )
        del api["deployments"][deployment_id]

    def get_stages(self, api_id: str) -> List[Dict[str, Any]]:
        self._enter("get_stages", api_id)
        return [dict(s) for s in self._get(api_id)["stages"].values()]

    def delete_stage(self, api_id: str, stage_name: str) -> None:
        self._enter("delete_stage", api_id, stage_name)
        stages = self._get(api_id)["stages"]
        if stage_name not in stages:
            raise GatewayNotFound(f"Invalid stage identifier specified {stage_name}")
        del stages[stage_name]

    # Seeding

    def seed_deployments(self, api_id: str, count: int) -> List[str]:
        """Add deployments that no stage points at."""
        ids = []
        for _ in range(count):
            deployment = {"id": self._new_id("dep")}
            self.apis[api_id]["deployments"][deployment["id"]] = deployment
            ids.append(deployment["id"])
        return ids


def authorizer_policy(target: str, credential: str = ROLE) -> OperationPolicy:
    return OperationPolicy(
        policy_name=AUTHORIZER_POLICY_NAME,
        parameters={"lambdaARN": target, "invokeRoleARN": credential},
    )


def build_definition(
    templates: List[URITemplate],
    api_policies: Optional[List[OperationPolicy]] = None,
    endpoint: Optional[str] = BACKEND + "/",
    name: str = "Orders",
    query_parameters: Optional[Dict[str, List[str]]] = None,
) -> APIDefinition:
    """API definition whose OpenAPI body declares exactly ``templates``."""
    paths: Dict[str, Dict[str, Any]] = {}
    for template in templates:
        parameters = [
            {"name": param, "in": "path", "required": True, "schema": {"type": "string"}}
            for param in re.findall(r"{([^}]+)}", template.uri_template)
        ]
        for param in (query_parameters or {}).get(template.uri_template, []):
            parameters.append({"name": param, "in": "query", "schema": {"type": "string"}})
        operation: Dict[str, Any] = {"responses": {"200": {"description": "OK"}}}
        if parameters:
            operation["parameters"] = parameters
        paths.setdefault(template.uri_template, {})[template.http_verb.lower()] = operation

    body = json.dumps({
        "openapi": "3.0.1",
        "info": {"title": name, "version": "1.0.0"},
        "paths": paths,
    })
    endpoint_config = json.dumps({"production_endpoints": {"url": endpoint}}) if endpoint else None
    return APIDefinition(
        id="cp-" + name.lower(),
        name=name,
        swagger_definition=body,
        endpoint_config=endpoint_config,
        api_policies=api_policies or [],
        uri_templates=templates,
    )


def template(path: str, verb: str, *policies: OperationPolicy) -> URITemplate:
    return URITemplate(uri_template=path, http_verb=verb, operation_policies=list(policies))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def reconciler(gateway):
    return GatewayReconciler(gateway, REGION, STAGE)


@pytest.fixture
def deployer(gateway):
    deployer = AWSGatewayDeployer()
    deployer.init(AWSEnvironment(region=REGION, stage=STAGE), transport=gateway)
    return deployer


@pytest.fixture
def orders_definition():
    return build_definition([
        template("/orders", "GET"),
        template("/orders", "POST"),
        template("/orders/{orderId}", "GET"),
    ])
