"""
Base deployer class for external API gateway connectors.

All deployers inherit from BaseDeployer and implement the control plane's
gateway contract:
- init(): Build the gateway client from environment settings
- deploy() / undeploy(): Provision and tear down an API
- validate(): Check that an API can be hosted by the gateway
- transform(): Normalize an API before it is deployed
- get_execution_url(): Resolve the public URL of a deployed API

Deployers raise DeployerError subclasses; ValidationResult is the
standardized result of validate().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ValidationResult:
    """Standardized result from gateway validation.

    Attributes:
        valid: Whether the API can be deployed on the gateway
        errors: Human-readable reasons the API cannot be deployed
    """
    valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary for JSON serialization."""
        result: Dict[str, Any] = {"valid": self.valid}
        if self.errors:
            result["errors"] = self.errors
        return result


class DeployerError(Exception):
    """Exception raised by deployers."""
    pass


class ConfigurationError(DeployerError):
    """Gateway environment settings are missing or invalid."""
    pass


class DefinitionError(DeployerError):
    """An API definition cannot be read or lacks required settings."""
    pass


class TransportError(DeployerError):
    """A call to the gateway's provisioning API failed."""

    def __init__(self, message: str, operation: str = "", code: str = ""):
        super().__init__(message)
        self.operation = operation
        self.code = code


class GatewayNotFound(TransportError):
    """The gateway reported that the addressed object does not exist."""
    pass


class GatewayConflict(TransportError):
    """The gateway reported that the object already exists."""
    pass


class ReconciliationError(DeployerError):
    """A stage of the reconciliation workflow failed."""

    def __init__(self, message: str, api_id: Optional[str] = None):
        super().__init__(message)
        self.api_id = api_id


class DefinitionImportError(ReconciliationError):
    """The gateway rejected the API definition on first import."""
    pass


class ReimportError(ReconciliationError):
    """Overwriting an existing gateway API failed."""

    def __init__(self, message: str, api_id: Optional[str] = None, target_missing: bool = False):
        super().__init__(message, api_id=api_id)
        self.target_missing = target_missing


class AuthorizerSyncError(ReconciliationError):
    """Creating or deleting an authorizer failed."""
    pass


class IntegrationBindError(ReconciliationError):
    """Binding a backend integration to a method failed."""
    pass


class MappingError(IntegrationBindError):
    """A method request parameter key could not be mapped."""
    pass


class DeploymentError(ReconciliationError):
    """Creating or removing a deployment or stage failed."""
    pass


class RollbackError(ReconciliationError):
    """Cleaning up after a failed first import also failed.

    The API may still exist on the gateway and needs manual cleanup.
    ``original`` is the error that triggered the rollback.
    """

    def __init__(self, message: str, api_id: Optional[str] = None,
                 original: Optional[BaseException] = None):
        super().__init__(message, api_id=api_id)
        self.original = original


class BaseDeployer(ABC):
    """Abstract base class for all gateway deployers.

    Subclasses must implement:
        - gateway_type: Gateway type identifier (e.g., 'AWS')
        - init(): Prepare the gateway client
        - deploy(): Create or update an API on the gateway
        - undeploy(): Remove an API's deployment from the gateway
        - get_execution_url(): Resolve the invocation URL

    Optional overrides:
        - validate(): Reject APIs the gateway cannot host
        - transform(): Normalize an API before deployment
        - undeploy_reference(): Single-argument teardown
    """

    def __init__(self, **kwargs):
        """Initialize deployer with optional configuration.

        Args:
            **kwargs: Deployer-specific configuration options
        """
        self._config = kwargs
        self._initialized = False

    @property
    @abstractmethod
    def gateway_type(self) -> str:
        """Return the gateway type identifier."""
        pass

    @abstractmethod
    def init(self, environment: Any) -> None:
        """Prepare the deployer for one gateway environment.

        Raises:
            ConfigurationError: If the environment cannot be used
        """
        pass

    @abstractmethod
    def deploy(self, definition: Any, reference: Optional[str] = None) -> str:
        """Deploy an API, returning the reference to persist for later calls."""
        pass

    @abstractmethod
    def undeploy(self, reference: str, delete: bool = False) -> bool:
        """Remove a deployed API; also delete it from the gateway when ``delete``."""
        pass

    @abstractmethod
    def get_execution_url(self, reference: str) -> str:
        """Return the URL clients use to invoke the deployed API."""
        pass

    def undeploy_reference(self, reference: str) -> bool:
        """Single-argument undeploy; nothing to do by default."""
        return True

    def validate(self, definition: Any) -> ValidationResult:
        """Validate an API for this gateway. Accepts everything by default."""
        return ValidationResult(valid=True)

    def transform(self, definition: Any) -> Any:
        """Return the API normalized for this gateway. Identity by default."""
        return definition

    def is_initialized(self) -> bool:
        """Return True once init() has succeeded."""
        return self._initialized

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ConfigurationError(f"{self.gateway_type} deployer is not initialized")
