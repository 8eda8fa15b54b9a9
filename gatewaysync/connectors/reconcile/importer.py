"""
Resource importer.

Two explicit stages:
1. Push the OpenAPI document (import for a new API, overwrite for an
   existing one) and get back the external API id.
2. Read the resulting resource graph. The import call does not return
   resource ids, so this second read is always needed.
"""

import logging
from typing import Any, Dict

from ...config.schema import APIDefinition
from ..base import (
    DefinitionImportError,
    GatewayNotFound,
    ReimportError,
    TransportError,
)
from ..transport import APIGatewayTransport
from .models import ExternalMethod, ExternalResource, ImportOutcome, ResourceGraph

logger = logging.getLogger(__name__)


class ResourceImporter:
    """Pushes API definitions to the gateway and reads back resources."""

    def __init__(self, transport: APIGatewayTransport):
        self._transport = transport

    def import_definition(self, definition: APIDefinition) -> ImportOutcome:
        """Create a new gateway API from the definition.

        Raises:
            DefinitionImportError: If the gateway rejects the definition
        """
        try:
            response = self._transport.import_definition(definition.swagger_definition)
        except TransportError as e:
            raise DefinitionImportError(
                f"Gateway rejected definition of API {definition.name}: {e}"
            ) from e

        api_id = response["id"]
        warnings = list(response.get("warnings") or [])
        for warning in warnings:
            logger.warning("Import warning for API %s (%s): %s", definition.name, api_id, warning)
        logger.info("Imported API %s as %s", definition.name, api_id)
        return ImportOutcome.created(api_id, warnings)

    def reimport_definition(self, api_id: str, definition: APIDefinition) -> ImportOutcome:
        """Overwrite an existing gateway API, keeping its id.

        Raises:
            ReimportError: If the API no longer exists (``target_missing``)
                or the gateway rejects the definition
        """
        try:
            response = self._transport.overwrite_definition(api_id, definition.swagger_definition)
        except GatewayNotFound as e:
            raise ReimportError(
                f"API {api_id} no longer exists on the gateway",
                api_id=api_id,
                target_missing=True,
            ) from e
        except TransportError as e:
            raise ReimportError(f"Failed to overwrite API {api_id}: {e}", api_id=api_id) from e

        warnings = list(response.get("warnings") or [])
        for warning in warnings:
            logger.warning("Reimport warning for API %s: %s", api_id, warning)
        logger.info("Reimported API %s over %s", definition.name, api_id)
        return ImportOutcome.reused(response.get("id", api_id), warnings)

    def fetch_resource_graph(self, api_id: str) -> ResourceGraph:
        """Read every resource and each method's declared request parameters.

        Raises:
            DefinitionImportError: If the resources cannot be read
        """
        try:
            items = self._transport.get_resources(api_id)
            graph = ResourceGraph(api_id=api_id)
            for item in items:
                graph.resources.append(self._read_resource(api_id, item))
        except TransportError as e:
            raise DefinitionImportError(
                f"Failed to read resources of API {api_id}: {e}", api_id=api_id
            ) from e

        logger.debug("API %s has %d resources", api_id, len(graph.resources))
        return graph

    def _read_resource(self, api_id: str, item: Dict[str, Any]) -> ExternalResource:
        resource = ExternalResource(id=item["id"], path=item.get("path", "/"))
        for http_method in (item.get("resourceMethods") or {}):
            method = self._transport.get_method(api_id, resource.id, http_method)
            resource.methods[http_method] = ExternalMethod(
                http_method=http_method,
                request_parameters=dict(method.get("requestParameters") or {}),
            )
        return resource
