"""Secret store clients that rotated credentials are written to."""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional

import hvac
import requests
from cryptography.fernet import Fernet
from hvac.exceptions import VaultError

from ..utils.errors import ConfigurationError, StoreError, create_error_suggestions

logger = logging.getLogger(__name__)

ROTATED_BY = "secret-rotator"
KUBERNETES_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"


class WriteResult(NamedTuple):
    """Outcome of a single secret store write."""

    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "WriteResult":
        return cls(True)

    @classmethod
    def failure(cls, reason: str) -> "WriteResult":
        return cls(False, reason)


class SecretStoreClient(ABC):
    """Capability to write one secret value to a path.

    Implementations make a single bounded attempt per call and never retry
    internally. Retrying is up to the caller, one cycle at a time.
    """

    @abstractmethod
    def write(self, path: str, secret: str) -> WriteResult:
        """Write ``secret`` to ``path``."""


class FileSecretStore(SecretStoreClient):
    """Stores secrets as Fernet-encrypted JSON files under a directory."""

    def __init__(self, directory: str, key: bytes):
        """
        Initialize file secret store.

        Args:
            directory: Root directory for secret files
            key: Fernet key used to encrypt secret files
        """
        self.directory = Path(directory)
        try:
            self.cipher = Fernet(key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError("Invalid encryption key for file secret store", details=str(e)) from e

    def secret_file(self, path: str) -> Path:
        """
        Map a store path to its encrypted file.

        Raises:
            StoreError: If the path is empty, absolute or escapes the directory
        """
        relative = Path(path.strip("/")) if path else Path()
        if not path or path.startswith("/") or ".." in relative.parts or not relative.parts:
            raise StoreError(f"Invalid secret store path: {path!r}")
        return self.directory / relative.with_name(relative.name + ".enc")

    def write(self, path: str, secret: str) -> WriteResult:
        try:
            secret_file = self.secret_file(path)
            payload = {
                "password": secret,
                "rotated_by": ROTATED_BY,
                "rotated_at": datetime.now(timezone.utc).isoformat(),
            }
            encrypted = self.cipher.encrypt(json.dumps(payload).encode("utf-8"))

            secret_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=secret_file.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(encrypted)
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, secret_file)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise

        except StoreError as e:
            return WriteResult.failure(e.message)
        except OSError as e:
            return WriteResult.failure(f"Failed to write secret file: {e}")

        logger.debug("Wrote encrypted secret file %s", secret_file)
        return WriteResult.success()

    def read(self, path: str) -> Dict[str, Any]:
        """Decrypt and return the payload stored at ``path``."""
        try:
            with open(self.secret_file(path), "rb") as f:
                return json.loads(self.cipher.decrypt(f.read()).decode("utf-8"))
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(
                f"Failed to read secret at {path}: {e}",
                suggestions=create_error_suggestions("store_unavailable"),
            ) from e


class VaultSecretStore(SecretStoreClient):
    """Writes secrets to a HashiCorp Vault KV version 2 engine."""

    def __init__(
        self,
        address: str,
        mount_point: str = "secret",
        auth: str = "token",
        token: Optional[str] = None,
        role: Optional[str] = None,
        timeout: int = 10,
        client: Optional[hvac.Client] = None,
    ):
        """
        Initialize Vault secret store.

        Args:
            address: Vault server address
            mount_point: KV v2 mount point
            auth: Authentication method (token, kubernetes)
            token: Vault token for token authentication
            role: Vault role for Kubernetes authentication
            timeout: Request timeout in seconds
            client: Preconfigured hvac client
        """
        if auth not in ("token", "kubernetes"):
            raise ConfigurationError(
                f"Unsupported Vault auth method: {auth}",
                suggestions=create_error_suggestions("configuration_invalid"),
            )
        if auth == "kubernetes" and not role:
            raise ConfigurationError("Vault Kubernetes authentication requires a role")

        self.address = address
        self.mount_point = mount_point
        self.auth = auth
        self.role = role
        self.client = client or hvac.Client(url=address, token=token, timeout=timeout)

    def _authenticate(self) -> None:
        """Log in with the Kubernetes service account when there is no valid token.

        An expired token is replaced by logging in again with a freshly read
        service account JWT.
        """
        if self.auth == "kubernetes" and (not self.client.token or not self.client.is_authenticated()):
            with open(KUBERNETES_TOKEN_PATH) as f:
                jwt = f.read().strip()
            logger.debug("Logging in to Vault at %s with role %s", self.address, self.role)
            self.client.auth.kubernetes.login(role=self.role, jwt=jwt)

        if not self.client.is_authenticated():
            raise StoreError(
                f"Not authenticated to Vault at {self.address}",
                suggestions=create_error_suggestions("store_unavailable"),
            )

    def write(self, path: str, secret: str) -> WriteResult:
        try:
            self._authenticate()
            self.client.secrets.kv.v2.create_or_update_secret(
                path=path,
                secret={"password": secret, "rotated_by": ROTATED_BY},
                mount_point=self.mount_point,
            )
        except StoreError as e:
            return WriteResult.failure(e.message)
        except (VaultError, requests.exceptions.RequestException, OSError) as e:
            return WriteResult.failure(f"Vault write to {path} failed: {e}")

        logger.debug("Wrote secret to Vault path %s/%s", self.mount_point, path)
        return WriteResult.success()


def load_or_create_key(key_file: str) -> bytes:
    """
    Load a Fernet key from file, creating it on first use.

    Args:
        key_file: Path to key file

    Returns:
        bytes: Fernet key
    """
    try:
        if os.path.exists(key_file):
            with open(key_file, "rb") as f:
                return f.read().strip()

        key_dir = os.path.dirname(key_file)
        if key_dir:
            os.makedirs(key_dir, exist_ok=True)

        key = Fernet.generate_key()
        with open(key_file, "wb") as f:
            f.write(key)
        os.chmod(key_file, 0o600)

        logger.info("Created new store encryption key at %s", key_file)
        return key

    except OSError as e:
        raise ConfigurationError(f"Failed to load encryption key {key_file}: {e}") from e


def build_secret_store(store_config: Dict[str, Any]) -> SecretStoreClient:
    """
    Build the secret store client described by the ``store`` config section.

    Args:
        store_config: Store configuration

    Returns:
        SecretStoreClient: Configured client
    """
    store_type = store_config.get("type", "file")

    if store_type == "file":
        file_config = store_config.get("file", {})
        directory = file_config.get("directory", ".secret-rotator/secrets")
        key_file = file_config.get("key_file", ".secret-rotator/store.key")
        return FileSecretStore(directory, load_or_create_key(key_file))

    if store_type == "vault":
        vault_config = store_config.get("vault", {})
        token_env = vault_config.get("token_env", "VAULT_TOKEN")
        return VaultSecretStore(
            address=vault_config.get("address", "http://vault.vault-system:8200"),
            mount_point=vault_config.get("mount_point", "secret"),
            auth=vault_config.get("auth", "token"),
            token=os.environ.get(token_env),
            role=vault_config.get("role"),
            timeout=vault_config.get("timeout", 10),
        )

    raise ConfigurationError(
        f"Unknown secret store type: {store_type}",
        suggestions=create_error_suggestions("configuration_invalid"),
    )
