"""Reading and validating the Hetzner API token from a Kubernetes secret."""

from __future__ import annotations

import base64
import binascii
from typing import Protocol

from kubernetes import client

from ..services.hcloud.models import SecretRef


class CredentialError(Exception):
    """Base class for failures obtaining the Hetzner API token."""


class HetznerSecretUnreachableError(CredentialError):
    """The referenced secret does not exist or cannot be read."""


class HCloudCredentialsInvalidError(CredentialError):
    """The secret exists but holds no usable token."""


class CredentialSource(Protocol):
    """Protocol for anything that can hand out the Hetzner API token."""

    def get_token(self, namespace: str, secret_ref: SecretRef) -> str:
        """Return the token or raise a CredentialError subclass."""
        ...


def _decode(value: str | bytes) -> str:
    # Handle both string and bytes (different versions of kubernetes client)
    if isinstance(value, bytes):
        return value.decode("utf-8")
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return value


def get_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
) -> str:
    """Get a value from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        key: Key in the secret

    Returns:
        Secret value

    Raises:
        HetznerSecretUnreachableError: If the secret cannot be read
        HCloudCredentialsInvalidError: If the key is missing
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise HetznerSecretUnreachableError(
                f"Secret '{secret_name}' not found in namespace '{namespace}'"
            ) from e
        raise HetznerSecretUnreachableError(
            f"Failed to read secret '{secret_name}' in namespace '{namespace}': {e.reason}"
        ) from e

    data = secret.data or {}
    if key not in data:
        raise HCloudCredentialsInvalidError(f"Key '{key}' not found in secret '{secret_name}'")
    return _decode(data[key])


def validate_token(token: str) -> str:
    """Check that a token is present and well formed.

    Returns:
        The token with surrounding whitespace removed

    Raises:
        HCloudCredentialsInvalidError: If the token is empty or contains whitespace
    """
    token = token.strip()
    if not token:
        raise HCloudCredentialsInvalidError("hcloud token is empty")
    if any(ch.isspace() for ch in token) or not token.isprintable():
        raise HCloudCredentialsInvalidError("hcloud token contains invalid characters")
    return token


class KubernetesSecretCredentialSource:
    """Credential source backed by a Kubernetes secret."""

    def __init__(self, api: client.CoreV1Api) -> None:
        self.api = api

    def get_token(self, namespace: str, secret_ref: SecretRef) -> str:
        value = get_secret_value(self.api, namespace, secret_ref.name, secret_ref.token_key)
        return validate_token(value)
