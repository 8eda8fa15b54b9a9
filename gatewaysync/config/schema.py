"""Gateway environment and API definition schema definitions."""

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


# Property names used by the control plane's environment settings
PROPERTY_REGION = "region"
PROPERTY_STAGE = "stage"
PROPERTY_ACCESS_KEY = "access_key"
PROPERTY_SECRET_KEY = "secret_key"
PROPERTY_PROFILE = "profile_name"

DEFAULT_STAGE = "default"


class AWSEnvironment(BaseModel):
    """Connection settings for one AWS API Gateway environment."""

    region: str = Field(description="AWS region (e.g., 'us-east-1')")
    stage: str = Field(DEFAULT_STAGE, description="Stage that deployments are bound to")
    access_key: Optional[str] = Field(None, description="AWS access key ID")
    secret_key: Optional[str] = Field(None, description="AWS secret access key")
    profile_name: Optional[str] = Field(None, description="AWS profile name to use instead of keys")
    connect_timeout: int = Field(10, description="Connect timeout in seconds")
    read_timeout: int = Field(60, description="Read timeout in seconds")
    max_attempts: int = Field(3, description="Total attempts per gateway call, retries included")

    @classmethod
    def from_properties(cls, properties: Dict[str, Any]) -> "AWSEnvironment":
        """Build settings from the host's additional-properties map."""
        values = {
            "region": properties.get(PROPERTY_REGION),
            "stage": properties.get(PROPERTY_STAGE) or DEFAULT_STAGE,
            "access_key": properties.get(PROPERTY_ACCESS_KEY),
            "secret_key": properties.get(PROPERTY_SECRET_KEY),
            "profile_name": properties.get(PROPERTY_PROFILE),
        }
        return cls(**values)


class OperationPolicy(BaseModel):
    """A named policy attached to an API or to one of its operations."""

    policy_name: str = Field(description="Policy name as known to the control plane")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Policy parameters")


class URITemplate(BaseModel):
    """A resource path and verb with its operation-level policies."""

    uri_template: str = Field(description="Resource path (e.g., '/orders/{id}')")
    http_verb: str = Field(description="HTTP method")
    operation_policies: List[OperationPolicy] = Field(
        default_factory=list,
        description="Ordered operation-level policies",
    )


class APIDefinition(BaseModel):
    """The control plane's view of an API."""

    id: str = Field(description="Control plane API identifier")
    name: str = Field(description="API name")
    version: str = Field("1.0.0", description="API version")
    context: Optional[str] = Field(None, description="API context path")
    swagger_definition: str = Field(description="OpenAPI document body")
    endpoint_config: Union[str, Dict[str, Any], None] = Field(
        None,
        description="Endpoint configuration as a JSON string or mapping",
    )
    api_policies: List[OperationPolicy] = Field(
        default_factory=list,
        description="Ordered API-level policies",
    )
    uri_templates: List[URITemplate] = Field(default_factory=list, description="Resources")
    description: Optional[str] = Field(None, description="API description")
    organization: Optional[str] = Field(None, description="Owning organization")
    created_time: Optional[str] = Field(None, description="Creation time on the gateway (ISO 8601)")
    initiated_from_gateway: bool = Field(
        False,
        description="True when the API was discovered on the gateway",
    )

    def endpoint_config_dict(self) -> Dict[str, Any]:
        """Return the endpoint configuration as a mapping.

        Raises:
            ValueError: If the configuration is not a JSON object
        """
        if self.endpoint_config is None:
            return {}
        if isinstance(self.endpoint_config, dict):
            return self.endpoint_config
        parsed = json.loads(self.endpoint_config)
        if not isinstance(parsed, dict):
            raise ValueError("Endpoint configuration must be a JSON object")
        return parsed

    def production_endpoint(self) -> Optional[str]:
        """Return the production endpoint URL, or None when not configured."""
        try:
            config = self.endpoint_config_dict()
        except ValueError:
            return None
        production = config.get("production_endpoints")
        if not isinstance(production, dict):
            return None
        url = production.get("url")
        return url if isinstance(url, str) and url else None
