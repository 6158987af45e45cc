"""
Credential acquisition for authentication policies.

Secrets are never stored in manifests: `apiKey`, `bearer` and `basic`
policies name the environment variables that hold them. Token flows
(oauth2, oidc, mtls) need an externally registered CredentialProvider.
"""

from __future__ import annotations

import base64
import os
from collections.abc import Mapping

from synod.errors import CredentialError
from synod.manifest.models import AuthenticationPolicy
from synod.providers.base import Credential, CredentialProvider


class EnvCredentialProvider(CredentialProvider):
    """Builds HTTP headers from environment variables."""

    SCHEMES = frozenset({"apiKey", "bearer", "basic"})

    def __init__(self, env: Mapping[str, str] | None = None):
        self._env = env

    def _read(self, policy: AuthenticationPolicy, var: str | None, label: str) -> str:
        if not var:
            raise CredentialError(
                f"policy {policy.name!r} ({policy.scheme}) does not name its {label} variable"
            )
        env = os.environ if self._env is None else self._env
        value = env.get(var)
        if not value:
            raise CredentialError(f"environment variable {var} is not set for {policy.name!r}")
        return value

    def acquire(self, policy: AuthenticationPolicy) -> Credential:
        if policy.scheme == "apiKey":
            secret = self._read(policy, policy.env, "secret")
            header = policy.header or "X-API-Key"
            return Credential(scheme=policy.scheme, headers={header: secret})
        if policy.scheme == "bearer":
            token = self._read(policy, policy.env, "token")
            return Credential(scheme=policy.scheme, headers={"Authorization": f"Bearer {token}"})
        if policy.scheme == "basic":
            user = self._read(policy, policy.username_env, "username")
            password = self._read(policy, policy.password_env, "password")
            encoded = base64.b64encode(f"{user}:{password}".encode()).decode("ascii")
            return Credential(scheme=policy.scheme, headers={"Authorization": f"Basic {encoded}"})
        raise CredentialError(
            f"no credential provider registered for scheme {policy.scheme!r} "
            f"(policy {policy.name!r})"
        )
