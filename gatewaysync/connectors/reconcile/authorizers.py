"""
Authorizer synchronizer.

Derives the Lambda authorizers an API needs from its policies, creates the
missing ones and, on re-sync, deletes the ones nothing needs any more.

Authorizers are identified by AuthorizerKey (Lambda ARN, invoke role ARN),
never by external id: ids regenerate, keys do not.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ...config.schema import APIDefinition, OperationPolicy
from ..base import AuthorizerSyncError, TransportError
from ..transport import APIGatewayTransport
from .models import (
    API_SCOPE,
    AUTHORIZER_CREDENTIAL_PARAMETER,
    AUTHORIZER_POLICY_NAME,
    AUTHORIZER_TARGET_PARAMETER,
    AuthorizerBindings,
    AuthorizerKey,
    ResourceScope,
)

logger = logging.getLogger(__name__)

AUTHORIZER_URI_TEMPLATE = (
    "arn:aws:apigateway:{region}:lambda:path/2015-03-31/functions/{target}/invocations"
)
AUTHORIZER_URI_PATTERN = re.compile(
    r"arn:aws:apigateway:[^:]+:lambda:path/2015-03-31/functions/([^/]+)/invocations"
)

ExistingAuthorizer = Tuple[AuthorizerKey, str]


def find_authorizer_policy(policies: Optional[Sequence[OperationPolicy]]) -> Optional[OperationPolicy]:
    """Return the first authorizer policy in definition order, if any."""
    return next(
        (policy for policy in policies or () if policy.policy_name == AUTHORIZER_POLICY_NAME),
        None,
    )


def policy_key(policy: OperationPolicy) -> AuthorizerKey:
    """Read the authorizer key out of an authorizer policy.

    Raises:
        AuthorizerSyncError: If a required parameter is missing
    """
    target = policy.parameters.get(AUTHORIZER_TARGET_PARAMETER)
    credential = policy.parameters.get(AUTHORIZER_CREDENTIAL_PARAMETER)
    if target is None or credential is None or not str(target) or not str(credential):
        raise AuthorizerSyncError(
            f"Policy {policy.policy_name} needs both {AUTHORIZER_TARGET_PARAMETER} "
            f"and {AUTHORIZER_CREDENTIAL_PARAMETER}"
        )
    return AuthorizerKey(str(target), str(credential))


def required_authorizers(definition: APIDefinition) -> Dict[ResourceScope, AuthorizerKey]:
    """Map each scope that carries an authorizer policy to its key.

    The API-level policy is stored under API_SCOPE; each operation with its
    own policy under its lower-cased (path, verb).
    """
    scopes: Dict[ResourceScope, AuthorizerKey] = {}

    api_policy = find_authorizer_policy(definition.api_policies)
    if api_policy is not None:
        scopes[API_SCOPE] = policy_key(api_policy)

    for template in definition.uri_templates:
        policy = find_authorizer_policy(template.operation_policies)
        if policy is not None:
            scopes[ResourceScope.of(template.uri_template, template.http_verb)] = policy_key(policy)

    return scopes


def authorizer_key_from_gateway(authorizer: Dict) -> Optional[AuthorizerKey]:
    """Recover the key of an authorizer created by this connector.

    Returns None for authorizers with another kind of URI (Cognito,
    hand-made, ...) which are left alone.
    """
    match = AUTHORIZER_URI_PATTERN.search(authorizer.get("authorizerUri") or "")
    credential = authorizer.get("authorizerCredentials")
    if not match or not credential:
        return None
    return AuthorizerKey(match.group(1), credential)


class AuthorizerSynchronizer:
    """Creates and prunes Lambda authorizers for one API."""

    def __init__(self, transport: APIGatewayTransport, region: str):
        self._transport = transport
        self._region = region

    def existing_authorizers(self, api_id: str) -> List[ExistingAuthorizer]:
        """Read the connector-managed authorizers currently on the API.

        Raises:
            AuthorizerSyncError: If the authorizers cannot be listed
        """
        try:
            items = self._transport.get_authorizers(api_id)
        except TransportError as e:
            raise AuthorizerSyncError(
                f"Failed to list authorizers of API {api_id}: {e}", api_id=api_id
            ) from e

        existing = []
        for item in items:
            key = authorizer_key_from_gateway(item)
            if key is None:
                logger.debug("Ignoring unmanaged authorizer %s on API %s", item.get("id"), api_id)
                continue
            existing.append((key, item["id"]))
        return existing

    def synchronize(
        self,
        api_id: str,
        definition: APIDefinition,
        existing: Iterable[ExistingAuthorizer] = (),
        prune: bool = False,
    ) -> AuthorizerBindings:
        """Make the API's authorizers match the definition's policies.

        Args:
            api_id: External API id
            definition: API whose policies declare the authorizers
            existing: Authorizers already on the API as (key, id) pairs
            prune: Delete authorizers no scope needs (re-sync only)

        Returns:
            AuthorizerBindings with scope -> key and key -> id mappings

        Raises:
            AuthorizerSyncError: On the first failed create or delete.
                Operations already applied are not undone.
        """
        bindings = AuthorizerBindings(scopes=required_authorizers(definition))
        required = set(bindings.scopes.values())

        duplicates: List[ExistingAuthorizer] = []
        for key, authorizer_id in existing:
            if key in bindings.authorizer_ids:
                duplicates.append((key, authorizer_id))
            else:
                bindings.authorizer_ids[key] = authorizer_id

        for key in dict.fromkeys(bindings.scopes.values()):
            if key not in bindings.authorizer_ids:
                bindings.authorizer_ids[key] = self._create(api_id, key)
                bindings.created.append(key)

        if prune:
            orphans = [
                (key, authorizer_id)
                for key, authorizer_id in bindings.authorizer_ids.items()
                if key not in required
            ]
            for key, authorizer_id in duplicates + orphans:
                if key in required and bindings.authorizer_ids.get(key) == authorizer_id:
                    continue
                self._delete(api_id, key, authorizer_id)
                if bindings.authorizer_ids.get(key) == authorizer_id:
                    del bindings.authorizer_ids[key]
                bindings.deleted.append(key)

        logger.info(
            "Authorizers for API %s: %d required, %d created, %d deleted",
            api_id, len(required), len(bindings.created), len(bindings.deleted),
        )
        return bindings

    def _create(self, api_id: str, key: AuthorizerKey) -> str:
        uri = AUTHORIZER_URI_TEMPLATE.format(region=self._region, target=key.target)
        try:
            response = self._transport.create_authorizer(
                api_id, key.display_name(), uri, key.credential
            )
        except TransportError as e:
            raise AuthorizerSyncError(
                f"Failed to create authorizer {key.display_name()} on API {api_id}: {e}",
                api_id=api_id,
            ) from e
        logger.debug("Created authorizer %s (%s) on API %s", key.display_name(), response["id"], api_id)
        return response["id"]

    def _delete(self, api_id: str, key: AuthorizerKey, authorizer_id: str) -> None:
        try:
            self._transport.delete_authorizer(api_id, authorizer_id)
        except TransportError as e:
            raise AuthorizerSyncError(
                f"Failed to delete authorizer {authorizer_id} on API {api_id}: {e}",
                api_id=api_id,
            ) from e
        logger.debug("Deleted authorizer %s (%s) on API %s", key.display_name(), authorizer_id, api_id)
