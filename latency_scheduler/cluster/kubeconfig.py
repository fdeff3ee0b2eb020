"""
latency_scheduler/cluster/kubeconfig.py
───────────────────────────────────────
Turns a kubeconfig file (or an in-cluster service account) into the
connection parameters of the orchestrator API client.

Parsing and authentication are delegated to the official kubernetes client
loaders, so every user type kubectl understands works here too: static and
file tokens, client certificates, exec credential plugins and auth
providers. The resulting Configuration is then adapted to httpx: CA and
client certificate files become an ssl.SSLContext, and the bearer token is
attached per request so that expiring plugin tokens are refreshed.
"""

from __future__ import annotations

import logging
import os
import ssl
from pathlib import Path
from typing import Dict, Generator, Optional, Union

import httpx
import yaml
from kubernetes.client import Configuration
from kubernetes.config import load_kube_config
from kubernetes.config.config_exception import ConfigException
from kubernetes.config.incluster_config import InClusterConfigLoader

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


class KubeConfigError(Exception):
    """Raised when the kubeconfig is missing, unreadable or inconsistent."""


class KubeCredentials:
    """
    Everything needed to open an authenticated connection to the API server.

    Wraps a kubernetes.client.Configuration filled by one of the loaders
    below. File paths on it (ssl_ca_cert, cert_file, key_file) are owned by
    the kubernetes loader, which writes inline *-data fields to temp files.
    """

    def __init__(self, configuration: Configuration) -> None:
        self.configuration = configuration

    def __repr__(self) -> str:
        return f"KubeCredentials(server={self.server!r})"

    @property
    def server(self) -> str:
        return self.configuration.host.rstrip("/")

    @property
    def has_client_certificate(self) -> bool:
        return bool(self.configuration.cert_file and self.configuration.key_file)

    def authorization(self) -> Optional[str]:
        """
        Current Authorization header value, or None for anonymous access.

        Runs the loader's refresh hook first, so an expired exec-plugin
        token is fetched again here.
        """
        value = self.configuration.get_api_key_with_prefix("authorization")
        if not value:
            return None
        # tokenFile contents are taken verbatim, trailing newline included
        return value.strip() or None

    def headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def auth(self) -> "BearerTokenAuth":
        return BearerTokenAuth(self)

    def ssl_context(self) -> Union[ssl.SSLContext, bool]:
        """
        Build the TLS context for the API client.

        Returns False (httpx "verify=False") only for plain-http servers with
        nothing to verify.

        Raises:
            KubeConfigError: the CA bundle or the client certificate/key
                             cannot be loaded.
        """
        if self.server.startswith("http://"):
            return False

        cfg = self.configuration
        try:
            if cfg.ssl_ca_cert:
                context = ssl.create_default_context(cafile=cfg.ssl_ca_cert)
            else:
                context = ssl.create_default_context()
            if self.has_client_certificate:
                context.load_cert_chain(certfile=cfg.cert_file, keyfile=cfg.key_file)
        except (ssl.SSLError, OSError) as e:
            raise KubeConfigError(f"TLS material rejected: {e}") from e

        if not cfg.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


class BearerTokenAuth(httpx.Auth):
    """Sets the Authorization header on every request from KubeCredentials."""

    def __init__(self, credentials: KubeCredentials) -> None:
        self._credentials = credentials

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        value = self._credentials.authorization()
        if value:
            request.headers["Authorization"] = value
        yield request


def _checked(credentials: KubeCredentials, source: str) -> KubeCredentials:
    if not credentials.authorization() and not credentials.has_client_certificate:
        logger.warning(
            "%s yields neither a bearer token nor a client certificate; "
            "requests to %s will be anonymous",
            source, credentials.server,
        )
    return credentials


# ── kubeconfig file ───────────────────────────────────────────────────────────

def load_kubeconfig(path: Union[str, Path], context: Optional[str] = None) -> KubeCredentials:
    """
    Resolve the credentials of `context` (default: current-context).

    Raises:
        KubeConfigError: file missing, not YAML, or the context/cluster/user
                         chain does not resolve.
    """
    path = Path(path).expanduser()
    configuration = Configuration()
    try:
        load_kube_config(
            config_file=str(path),
            context=context,
            client_configuration=configuration,
            persist_config=False,
        )
    except ConfigException as e:
        raise KubeConfigError(f"kubeconfig {path}: {e}") from e
    except yaml.YAMLError as e:
        raise KubeConfigError(f"kubeconfig {path} is not valid YAML: {e}") from e
    except OSError as e:
        raise KubeConfigError(f"could not read kubeconfig {path}: {e}") from e

    credentials = KubeCredentials(configuration)
    logger.info("Loaded kubeconfig %s context %s (server %s)", path, context or "<current>", credentials.server)
    return _checked(credentials, f"kubeconfig {path}")


# ── in-cluster service account ────────────────────────────────────────────────

def load_incluster_credentials(sa_dir: Path = SERVICE_ACCOUNT_DIR) -> KubeCredentials:
    """
    Credentials of the pod's own service account.

    The token file is re-read when the loader's refresh interval elapses,
    so projected (rotating) service-account tokens keep working.

    Raises:
        KubeConfigError: not running in a cluster, or the token/CA files
                         are missing.
    """
    configuration = Configuration()
    loader = InClusterConfigLoader(
        token_filename=str(sa_dir / "token"),
        cert_filename=str(sa_dir / "ca.crt"),
        environ=os.environ,
    )
    try:
        loader.load_and_set(configuration)
    except ConfigException as e:
        raise KubeConfigError(f"in-cluster service account unusable: {e}") from e

    credentials = KubeCredentials(configuration)
    logger.info("Loaded in-cluster service account (server %s)", credentials.server)
    return _checked(credentials, "service account")
