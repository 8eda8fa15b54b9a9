"""Types shared by the reconciliation stages."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


# Policy that carries Lambda authorizer settings
AUTHORIZER_POLICY_NAME = "awsLambdaAuthorizer"
AUTHORIZER_TARGET_PARAMETER = "lambdaARN"
AUTHORIZER_CREDENTIAL_PARAMETER = "invokeRoleARN"


class AuthorizerKey(NamedTuple):
    """Identity of an external authorizer: invocation target and credential."""
    target: str
    credential: str

    def display_name(self) -> str:
        """Deterministic authorizer name, e.g. ``my-fn-invoke-role``."""
        return f"{self.target.rsplit(':', 1)[-1]}-{self.credential.rsplit('/', 1)[-1]}"


class ResourceScope(NamedTuple):
    """Where an authorizer applies. Path and verb are lower-cased."""
    path: Optional[str]
    verb: Optional[str]

    @classmethod
    def of(cls, path: str, verb: str) -> "ResourceScope":
        return cls(path.lower(), verb.lower())

    @property
    def is_api_level(self) -> bool:
        return self.path is None and self.verb is None


# Applies to every operation without its own authorizer policy
API_SCOPE = ResourceScope(None, None)


@dataclass
class AuthorizerBindings:
    """Result of authorizer synchronization.

    Attributes:
        scopes: Which authorizer key applies to each scope
        authorizer_ids: External authorizer id for each key
        created: Keys whose authorizers were created in this pass
        deleted: Keys whose authorizers were deleted in this pass
    """
    scopes: Dict[ResourceScope, AuthorizerKey] = field(default_factory=dict)
    authorizer_ids: Dict[AuthorizerKey, str] = field(default_factory=dict)
    created: List[AuthorizerKey] = field(default_factory=list)
    deleted: List[AuthorizerKey] = field(default_factory=list)

    def resolve(self, path: str, verb: str) -> Optional[str]:
        """Authorizer id for an operation: exact scope first, then API level."""
        for scope in (ResourceScope.of(path, verb), API_SCOPE):
            key = self.scopes.get(scope)
            if key is not None and key in self.authorizer_ids:
                return self.authorizer_ids[key]
        return None


@dataclass
class ExternalMethod:
    """A method on a gateway resource with its declared request parameters."""
    http_method: str
    request_parameters: Dict[str, bool] = field(default_factory=dict)


@dataclass
class ExternalResource:
    """A gateway resource and the methods it exposes."""
    id: str
    path: str
    methods: Dict[str, ExternalMethod] = field(default_factory=dict)


@dataclass
class ResourceGraph:
    """The gateway's resource tree for one API."""
    api_id: str
    resources: List[ExternalResource] = field(default_factory=list)

    def with_methods(self) -> List[ExternalResource]:
        return [resource for resource in self.resources if resource.methods]


class OutcomeKind(Enum):
    """How the external API id was obtained."""
    CREATED = "created"    # Minted by this invocation; rolled back on failure
    REUSED = "reused"      # Pre-existing; never deleted on failure


@dataclass(frozen=True)
class ImportOutcome:
    """Result of the import stage."""
    kind: OutcomeKind
    api_id: str
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def created(cls, api_id: str, warnings: Optional[List[str]] = None) -> "ImportOutcome":
        return cls(OutcomeKind.CREATED, api_id, list(warnings or []))

    @classmethod
    def reused(cls, api_id: str, warnings: Optional[List[str]] = None) -> "ImportOutcome":
        return cls(OutcomeKind.REUSED, api_id, list(warnings or []))

    @property
    def is_created(self) -> bool:
        return self.kind is OutcomeKind.CREATED


@dataclass
class DeploymentReference:
    """Opaque reference the control plane persists between reconciliations.

    Serialized as the gateway's REST API object in JSON. ``parse`` also
    accepts the discovery artifact (a JSON array whose first element is the
    REST API object) and a bare API id.
    """
    api_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_rest_api(cls, rest_api: Dict[str, Any]) -> "DeploymentReference":
        metadata = {k: v for k, v in rest_api.items() if k != "ResponseMetadata"}
        return cls(api_id=rest_api["id"], metadata=metadata)

    def to_string(self) -> str:
        payload = dict(self.metadata)
        payload["id"] = self.api_id
        return json.dumps(payload, default=str, sort_keys=True)

    @classmethod
    def parse(cls, reference: str) -> "DeploymentReference":
        """Recover a reference from its serialized form.

        Raises:
            ValueError: If no API id can be recovered
        """
        text = (reference or "").strip()
        if not text:
            raise ValueError("Empty deployment reference")

        try:
            payload = json.loads(text)
        except ValueError:
            # Bare API id
            if any(ch in text for ch in " {}[]\"'"):
                raise ValueError(f"Unrecognized deployment reference: {text[:80]}")
            return cls(api_id=text)

        if isinstance(payload, list) and payload:
            payload = payload[0]
        if isinstance(payload, (str, int)) and not isinstance(payload, bool) and str(payload):
            return cls(api_id=str(payload))
        if isinstance(payload, dict) and isinstance(payload.get("id"), str) and payload["id"]:
            metadata = {k: v for k, v in payload.items() if k != "id"}
            return cls(api_id=payload["id"], metadata=metadata)
        raise ValueError(f"Deployment reference carries no API id: {text[:80]}")
