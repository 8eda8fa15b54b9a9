"""
Gateway reconciler.

Makes the gateway's state match an API definition:

    import / reimport -> resource graph -> authorizers -> integrations -> deployment

A first import (ImportOutcome CREATED) is rolled back as a whole when any
later stage fails. A reimport (REUSED) is never rolled back: the failure is
reported and the API keeps whatever state the failed pass left.
"""

import logging
from typing import Optional

from ...config.schema import APIDefinition
from ..base import DefinitionError, DeploymentError, GatewayNotFound, TransportError
from ..transport import APIGatewayTransport
from .authorizers import AuthorizerSynchronizer
from .deployments import DeploymentCommitter
from .importer import ResourceImporter
from .integrations import IntegrationBinder, production_base_url
from .models import DeploymentReference, ImportOutcome
from .rollback import RollbackHandler, delete_api

logger = logging.getLogger(__name__)


class GatewayReconciler:
    """Synchronizes API definitions onto one AWS API Gateway account and stage."""

    def __init__(self, transport: APIGatewayTransport, region: str, stage: str):
        self.transport = transport
        self.region = region
        self.stage = stage
        self.importer = ResourceImporter(transport)
        self.authorizers = AuthorizerSynchronizer(transport, region)
        self.binder = IntegrationBinder(transport)
        self.committer = DeploymentCommitter(transport)
        self.rollback = RollbackHandler(transport)

    def import_api(self, definition: APIDefinition) -> DeploymentReference:
        """Create the API on the gateway and deploy it.

        Raises:
            DefinitionError: If the definition has no production endpoint
            ReconciliationError: If a stage fails; the created API is removed
            RollbackError: If the stage failure could not be cleaned up
        """
        base_url = self._base_url(definition)
        outcome = self.importer.import_definition(definition)
        try:
            return self._reconcile(outcome, definition, base_url)
        except Exception as e:
            self._rollback(outcome, e)
            raise

    def reimport_api(self, reference: DeploymentReference, definition: APIDefinition) -> DeploymentReference:
        """Overwrite a deployed API in place and redeploy it.

        Raises:
            DefinitionError: If the definition has no production endpoint
            ReimportError: If the API is gone from the gateway (``target_missing``)
            ReconciliationError: If a later stage fails. Nothing is rolled back.
        """
        base_url = self._base_url(definition)
        outcome = self.importer.reimport_definition(reference.api_id, definition)
        return self._reconcile(outcome, definition, base_url)

    def sync(self, definition: APIDefinition, reference: Optional[DeploymentReference] = None) -> DeploymentReference:
        """Import when there is no prior reference, reimport otherwise."""
        if reference is None:
            return self.import_api(definition)
        return self.reimport_api(reference, definition)

    def teardown(self, reference: DeploymentReference, delete: bool = False) -> None:
        """Remove the API's stage and deployments, and the API itself when ``delete``.

        Raises:
            DeploymentError: On any failure other than "not found"
        """
        self.committer.decommission(reference.api_id, self.stage)
        if delete:
            try:
                delete_api(self.transport, reference.api_id)
            except TransportError as e:
                raise DeploymentError(
                    f"Failed to delete API {reference.api_id}: {e}", api_id=reference.api_id
                ) from e

    def _reconcile(self, outcome: ImportOutcome, definition: APIDefinition, base_url: str) -> DeploymentReference:
        api_id = outcome.api_id
        graph = self.importer.fetch_resource_graph(api_id)

        if outcome.is_created:
            bindings = self.authorizers.synchronize(api_id, definition)
        else:
            existing = self.authorizers.existing_authorizers(api_id)
            bindings = self.authorizers.synchronize(api_id, definition, existing, prune=True)

        self.binder.bind(api_id, graph, base_url, bindings)
        self.committer.commit(api_id, self.stage)
        return self._reference(api_id)

    def _rollback(self, outcome: ImportOutcome, error: BaseException) -> None:
        if not outcome.is_created:
            return
        logger.warning("Import of API %s failed: %s", outcome.api_id, error)
        self.rollback.rollback_first_import(outcome.api_id, original=error)

    def _reference(self, api_id: str) -> DeploymentReference:
        try:
            rest_api = self.transport.get_api(api_id)
        except GatewayNotFound as e:
            raise DeploymentError(f"API {api_id} vanished after deployment", api_id=api_id) from e
        except TransportError as e:
            raise DeploymentError(f"Failed to read API {api_id}: {e}", api_id=api_id) from e
        return DeploymentReference.from_rest_api(rest_api)

    @staticmethod
    def _base_url(definition: APIDefinition) -> str:
        try:
            config = definition.endpoint_config_dict()
        except ValueError as e:
            raise DefinitionError(f"Invalid endpoint configuration for API {definition.name}: {e}") from e
        url = production_base_url(config)
        if url is None:
            raise DefinitionError(f"API {definition.name} has no production endpoint URL")
        return url
