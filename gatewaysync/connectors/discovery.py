"""
AWS API Gateway discovery.

Finds REST APIs that already live on the gateway and turns them into
control plane API definitions:
- REST APIs (paginated)
- OpenAPI export of the deployed stage
- Backend endpoint recovered from the first integration
- Reference artifact the control plane can later deploy against
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config.schema import APIDefinition
from .base import GatewayNotFound, TransportError
from .transport import APIGatewayTransport

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "1.0.0"
OPEN_API_VERSION = "oas30"
JSON_PAYLOAD_TYPE = "application/json"


@dataclass
class DiscoveredAPI:
    """A gateway API as seen by the control plane."""
    definition: APIDefinition
    reference: str
    stage: Optional[str] = None


def create_reference_artifact(rest_api: Dict[str, Any], definition_text: str) -> str:
    """Combine the REST API object and its OpenAPI export into one JSON array."""
    api = {k: v for k, v in rest_api.items() if k != "ResponseMetadata"}
    return json.dumps([api, json.loads(definition_text)], default=str)


class AWSAPIDiscovery:
    """Reads existing REST APIs from AWS API Gateway."""

    def __init__(self, transport: APIGatewayTransport):
        self._transport = transport

    def list_apis(self) -> List[Dict[str, Any]]:
        return self._transport.get_apis()

    def stage_name(self, api_id: str) -> Optional[str]:
        """First stage of the API, or None when it has never been deployed."""
        stages = self._transport.get_stages(api_id)
        return stages[0]["stageName"] if stages else None

    def export_definition(self, api_id: str, stage: str) -> str:
        return self._transport.export_definition(
            api_id, stage, export_type=OPEN_API_VERSION, accepts=JSON_PAYLOAD_TYPE
        )

    def endpoint_url(self, api_id: str) -> Optional[str]:
        """Integration URI of the first method of the first resource that has one."""
        resource = next(
            (r for r in self._transport.get_resources(api_id) if r.get("resourceMethods")),
            None,
        )
        if resource is None:
            return None
        http_method = next(iter(resource["resourceMethods"]))
        try:
            integration = self._transport.get_integration(api_id, resource["id"], http_method)
        except GatewayNotFound:
            return None
        return integration.get("uri")

    def to_definition(self, rest_api: Dict[str, Any], definition_text: str,
                      organization: Optional[str] = None) -> APIDefinition:
        """Build a control plane definition from a gateway REST API."""
        name = rest_api.get("name") or rest_api["id"]
        context = name.lower().replace(" ", "-")
        created = rest_api.get("createdDate")

        definition = APIDefinition(
            id=rest_api["id"],
            name=name,
            version=rest_api.get("version") or DEFAULT_VERSION,
            context=context,
            swagger_definition=definition_text,
            description=rest_api.get("description"),
            organization=organization,
            created_time=created.isoformat() if isinstance(created, datetime) else created,
            initiated_from_gateway=True,
        )

        url = self.endpoint_url(rest_api["id"])
        if url:
            definition.endpoint_config = {
                "endpoint_type": "http",
                "production_endpoints": {"url": url},
                "sandbox_endpoints": {"url": url},
            }
        else:
            logger.warning("No endpoint URLs found for API: %s", name)
        return definition

    def discover(self, organization: Optional[str] = None) -> List[DiscoveredAPI]:
        """Discover every deployed REST API.

        APIs without a stage cannot be exported and are skipped. A failure on
        one API is logged and does not stop the others.
        """
        discovered = []
        for rest_api in self.list_apis():
            api_id = rest_api["id"]
            try:
                stage = self.stage_name(api_id)
                if stage is None:
                    logger.info("Skipping API %s: not deployed to any stage", api_id)
                    continue
                definition_text = self.export_definition(api_id, stage)
                discovered.append(DiscoveredAPI(
                    definition=self.to_definition(rest_api, definition_text, organization),
                    reference=create_reference_artifact(rest_api, definition_text),
                    stage=stage,
                ))
            except (TransportError, ValueError) as e:
                logger.warning("Failed to discover API %s: %s", api_id, e)
        return discovered
