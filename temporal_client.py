"""Temporal client factory.

Connects to Temporal Cloud when an API key is configured, or to a local
development server otherwise.
"""

import os
from pathlib import Path
from typing import Mapping, Optional, Union

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from temporalio.client import Client
from temporalio.service import TLSConfig

DEFAULT_LOCAL_ENDPOINT = "localhost:7233"


def _tls_config(cert_path: Optional[str], key_path: Optional[str]) -> Union[bool, TLSConfig]:
    if cert_path and key_path:
        # Client certificate for mTLS namespaces
        return TLSConfig(
            client_cert=Path(cert_path).read_bytes(),
            client_private_key=Path(key_path).read_bytes(),
        )
    return True


async def get_temporal_client(env: Optional[Mapping[str, str]] = None) -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: host:port (default "localhost:7233")
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: Temporal Cloud API key; enables TLS
    - TEMPORAL_CERT_PATH, TEMPORAL_KEY_PATH: client certificate and key (optional, mTLS)

    Raises:
        ValueError: If an API key is set without an endpoint
    """
    env = os.environ if env is None else env

    endpoint = env.get("TEMPORAL_ENDPOINT")
    namespace = env.get("TEMPORAL_NAMESPACE", "default")
    api_key = env.get("TEMPORAL_API_KEY")
    cert_path = env.get("TEMPORAL_CERT_PATH")
    key_path = env.get("TEMPORAL_KEY_PATH")

    if not api_key:
        # Local development server, plaintext
        return await Client.connect(endpoint or DEFAULT_LOCAL_ENDPOINT, namespace=namespace)

    if not endpoint:
        raise ValueError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal Cloud endpoint (e.g., 'namespace.acct.tmprl.cloud:7233')"
        )

    return await Client.connect(
        target_host=endpoint,
        namespace=namespace,
        tls=_tls_config(cert_path, key_path),
        api_key=api_key,
    )
