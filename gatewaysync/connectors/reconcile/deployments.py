"""Deployment committer: one live deployment per API, idempotent teardown."""

import logging
from typing import List

from ..base import DeploymentError, GatewayNotFound, TransportError
from ..transport import APIGatewayTransport

logger = logging.getLogger(__name__)


class DeploymentCommitter:
    """Creates, prunes and removes deployments and stages."""

    def __init__(self, transport: APIGatewayTransport):
        self._transport = transport

    def commit(self, api_id: str, stage_name: str) -> str:
        """Deploy the API to ``stage_name`` and drop every older deployment.

        Older deployments are deleted best-effort: each is attempted and a
        failure is logged without stopping the others.

        Returns:
            Id of the new deployment

        Raises:
            DeploymentError: If the deployment cannot be created
        """
        try:
            deployment_id = self._transport.create_deployment(api_id, stage_name)["id"]
        except TransportError as e:
            raise DeploymentError(
                f"Failed to deploy API {api_id} to stage {stage_name}: {e}", api_id=api_id
            ) from e
        logger.info("Deployed API %s to stage %s as %s", api_id, stage_name, deployment_id)

        failed = self.prune(api_id, keep=deployment_id)
        if failed:
            logger.warning(
                "API %s still has superseded deployments: %s", api_id, ", ".join(failed)
            )
        return deployment_id

    def prune(self, api_id: str, keep: str) -> List[str]:
        """Delete every deployment except ``keep``.

        Returns:
            Ids of deployments that could not be deleted
        """
        try:
            deployments = self._transport.get_deployments(api_id)
        except TransportError as e:
            logger.warning("Cannot list deployments of API %s: %s", api_id, e)
            return []

        failed = []
        for deployment in deployments:
            if deployment["id"] == keep:
                continue
            try:
                self._transport.delete_deployment(api_id, deployment["id"])
                logger.debug("Deleted superseded deployment %s of API %s", deployment["id"], api_id)
            except TransportError as e:
                logger.warning(
                    "Failed to delete superseded deployment %s of API %s: %s",
                    deployment["id"], api_id, e,
                )
                failed.append(deployment["id"])
        return failed

    def decommission(self, api_id: str, stage_name: str) -> None:
        """Delete the stage, then every deployment.

        Anything already gone counts as deleted, so calling this twice is safe.

        Raises:
            DeploymentError: On any failure other than "not found"
        """
        try:
            stages = self._transport.get_stages(api_id)
        except GatewayNotFound:
            logger.debug("API %s not found; nothing to undeploy", api_id)
            return
        except TransportError as e:
            raise DeploymentError(f"Failed to list stages of API {api_id}: {e}", api_id=api_id) from e

        if stages:
            try:
                self._transport.delete_stage(api_id, stage_name)
                logger.info("Deleted stage %s of API %s", stage_name, api_id)
            except GatewayNotFound:
                logger.debug("Stage %s of API %s already deleted", stage_name, api_id)
            except TransportError as e:
                raise DeploymentError(
                    f"Failed to delete stage {stage_name} of API {api_id}: {e}", api_id=api_id
                ) from e

        try:
            deployments = self._transport.get_deployments(api_id)
        except GatewayNotFound:
            return
        except TransportError as e:
            raise DeploymentError(
                f"Failed to list deployments of API {api_id}: {e}", api_id=api_id
            ) from e

        for deployment in deployments:
            try:
                self._transport.delete_deployment(api_id, deployment["id"])
            except GatewayNotFound:
                logger.debug("Deployment %s of API %s already deleted", deployment["id"], api_id)
            except TransportError as e:
                raise DeploymentError(
                    f"Failed to delete deployment {deployment['id']} of API {api_id}: {e}",
                    api_id=api_id,
                ) from e
        logger.info("Undeployed API %s", api_id)
