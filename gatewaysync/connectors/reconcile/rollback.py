"""Rollback of a failed first-time import, and API deletion."""

import logging
from typing import Optional

from ..base import GatewayNotFound, RollbackError, TransportError
from ..transport import APIGatewayTransport

logger = logging.getLogger(__name__)


def delete_api(transport: APIGatewayTransport, api_id: str) -> bool:
    """Delete an API if it exists.

    Returns:
        True if the API was deleted, False if it was already gone

    Raises:
        TransportError: On any failure other than "not found"
    """
    try:
        transport.get_api(api_id)
        transport.delete_api(api_id)
    except GatewayNotFound:
        logger.debug("API %s not found; it may have been deleted already", api_id)
        return False
    logger.info("Deleted API %s", api_id)
    return True


class RollbackHandler:
    """Removes an API created by a reconciliation that then failed."""

    def __init__(self, transport: APIGatewayTransport):
        self._transport = transport

    def rollback_first_import(self, api_id: str, original: Optional[BaseException] = None) -> None:
        """Delete the API created by this invocation.

        Only call this for ids minted in the same invocation; an API that
        existed before must never be deleted on failure.

        Raises:
            RollbackError: If the API could not be deleted. It carries the
                error that triggered the rollback.
        """
        logger.info("Rolling back import of API %s", api_id)
        try:
            delete_api(self._transport, api_id)
        except TransportError as e:
            logger.error("Rollback of API %s failed; manual cleanup required: %s", api_id, e)
            raise RollbackError(
                f"Rollback of API {api_id} failed after '{original}': {e}",
                api_id=api_id,
                original=original,
            ) from e
