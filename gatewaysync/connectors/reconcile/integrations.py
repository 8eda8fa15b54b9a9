"""
Integration binder.

For every resource that exposes at least one method:
- a CORS preflight (OPTIONS, MOCK integration) on the resource
- per method: an HTTP integration to the production backend carrying the
  method's request parameters, a default 200 response mapping, the
  resolved authorizer and the CORS origin header
"""

import logging
from typing import Dict, Optional

from ..base import (
    GatewayConflict,
    IntegrationBindError,
    MappingError,
    TransportError,
)
from ..transport import APIGatewayTransport
from .models import AuthorizerBindings, ExternalMethod, ExternalResource, ResourceGraph

logger = logging.getLogger(__name__)

METHOD_REQUEST_PREFIX = "method.request."
INTEGRATION_REQUEST_PREFIX = "integration.request."
PARAMETER_LOCATIONS = ("path", "querystring", "header")

JSON_PAYLOAD_TYPE = "application/json"
STATUS_OK = "200"

ALLOW_HEADERS = "method.response.header.Access-Control-Allow-Headers"
ALLOW_METHODS = "method.response.header.Access-Control-Allow-Methods"
ALLOW_ORIGIN = "method.response.header.Access-Control-Allow-Origin"
CORS_ALLOWED_HEADERS = "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token"


def map_request_parameter(key: str) -> Dict[str, str]:
    """Map one method request parameter onto the integration request.

    ``method.request.querystring.page`` becomes
    ``{"integration.request.querystring.page": "method.request.querystring.page"}``.

    Raises:
        MappingError: If the key is not ``method.request.<location>.<name>``
    """
    if not key.startswith(METHOD_REQUEST_PREFIX):
        raise MappingError(f"Request parameter {key!r} does not start with {METHOD_REQUEST_PREFIX!r}")

    location, _, name = key[len(METHOD_REQUEST_PREFIX):].partition(".")
    if location not in PARAMETER_LOCATIONS:
        raise MappingError(f"Request parameter {key!r} has unknown location {location!r}")
    if not name:
        raise MappingError(f"Request parameter {key!r} has no name")

    suffix = f"{location}.{name}"
    return {INTEGRATION_REQUEST_PREFIX + suffix: METHOD_REQUEST_PREFIX + suffix}


def map_request_parameters(method: ExternalMethod) -> Dict[str, str]:
    mappings: Dict[str, str] = {}
    for key in method.request_parameters:
        mappings.update(map_request_parameter(key))
    return mappings


def production_base_url(endpoint_config: Dict) -> Optional[str]:
    """Backend base URL from an endpoint configuration, one trailing slash stripped."""
    production = endpoint_config.get("production_endpoints")
    url = production.get("url") if isinstance(production, dict) else None
    if not isinstance(url, str) or not url:
        return None
    return url[:-1] if url.endswith("/") else url


class IntegrationBinder:
    """Binds backend integrations, authorizers and CORS to gateway methods."""

    def __init__(self, transport: APIGatewayTransport):
        self._transport = transport

    def bind(
        self,
        api_id: str,
        graph: ResourceGraph,
        base_url: str,
        bindings: AuthorizerBindings,
    ) -> int:
        """Bind every method of every resource.

        Returns:
            Number of methods bound

        Raises:
            MappingError: If a request parameter key is malformed
            IntegrationBindError: If any gateway call fails. Methods bound
                earlier in the pass keep their new state.
        """
        bound = 0
        for resource in graph.with_methods():
            try:
                self.configure_preflight(api_id, resource)
                for method in resource.methods.values():
                    self.bind_method(api_id, resource, method, base_url, bindings)
                    bound += 1
            except IntegrationBindError:
                raise
            except TransportError as e:
                raise IntegrationBindError(
                    f"Failed to bind resource {resource.path} of API {api_id}: {e}",
                    api_id=api_id,
                ) from e

        logger.info("Bound %d methods on API %s", bound, api_id)
        return bound

    def bind_method(
        self,
        api_id: str,
        resource: ExternalResource,
        method: ExternalMethod,
        base_url: str,
        bindings: AuthorizerBindings,
    ) -> None:
        verb = method.http_method
        mappings = map_request_parameters(method)

        self._transport.put_integration(
            api_id,
            resource.id,
            verb,
            integration_type="HTTP",
            uri=base_url + resource.path,
            integration_http_method=verb,
            request_parameters=mappings,
        )
        self._transport.put_integration_response(
            api_id, resource.id, verb, STATUS_OK,
            response_templates={JSON_PAYLOAD_TYPE: ""},
        )

        authorizer_id = bindings.resolve(resource.path, verb)
        if authorizer_id is None:
            logger.info(
                "No authorizer for %s %s at API or resource level", verb, resource.path
            )
        else:
            self._transport.patch_method(api_id, resource.id, verb, [
                {"op": "replace", "path": "/authorizationType", "value": "CUSTOM"},
                {"op": "replace", "path": "/authorizerId", "value": authorizer_id},
            ])

        self.configure_method_cors(api_id, resource, verb)
        logger.debug("Bound %s %s to %s%s", verb, resource.path, base_url, resource.path)

    def configure_preflight(self, api_id: str, resource: ExternalResource) -> None:
        """Answer CORS preflight requests on the resource with a MOCK integration.

        Resources whose definition already declares OPTIONS are left to the
        regular method binding.
        """
        if "OPTIONS" in resource.methods:
            return

        allowed = ",".join(sorted(set(resource.methods) | {"OPTIONS"}))
        self._transport.put_method(api_id, resource.id, "OPTIONS", authorization_type="NONE")
        self._transport.put_integration(
            api_id, resource.id, "OPTIONS",
            integration_type="MOCK",
            request_templates={JSON_PAYLOAD_TYPE: '{"statusCode": 200}'},
        )
        self._put_method_response(api_id, resource.id, "OPTIONS", {
            ALLOW_HEADERS: False,
            ALLOW_METHODS: False,
            ALLOW_ORIGIN: False,
        })
        self._transport.put_integration_response(
            api_id, resource.id, "OPTIONS", STATUS_OK,
            response_templates={JSON_PAYLOAD_TYPE: ""},
            response_parameters={
                ALLOW_HEADERS: f"'{CORS_ALLOWED_HEADERS}'",
                ALLOW_METHODS: f"'{allowed}'",
                ALLOW_ORIGIN: "'*'",
            },
        )

    def configure_method_cors(self, api_id: str, resource: ExternalResource, verb: str) -> None:
        """Return Access-Control-Allow-Origin from the method's 200 response."""
        self._put_method_response(api_id, resource.id, verb, {ALLOW_ORIGIN: False})
        self._transport.update_integration_response(api_id, resource.id, verb, STATUS_OK, [
            {"op": "add", "path": f"/responseParameters/{ALLOW_ORIGIN}", "value": "'*'"},
        ])

    def _put_method_response(self, api_id: str, resource_id: str, verb: str,
                             parameters: Dict[str, bool]) -> None:
        try:
            self._transport.put_method_response(api_id, resource_id, verb, STATUS_OK, parameters)
        except GatewayConflict:
            # 200 already declared by the definition
            self._transport.update_method_response(api_id, resource_id, verb, STATUS_OK, [
                {"op": "add", "path": f"/responseParameters/{name}", "value": str(required).lower()}
                for name, required in parameters.items()
            ])
