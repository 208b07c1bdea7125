"""Device identity management for the gateway agent.

The agent identifies itself to the gateway with an Ed25519 keypair. The device
id is the lowercase hex SHA-256 digest of the raw public key, so it never
changes for a given key. The keypair lives in the OS secure store (via
``keyring``); regenerating it invalidates the existing pairing and the operator
must approve the new device on the gateway.
"""

import base64
import binascii
import hashlib
import json
from dataclasses import dataclass
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from utils import create_contextual_logger
from .errors import IdentityCorruptedError, IdentityStoreError

DEFAULT_SERVICE = "com.vector.clawbar.device-identity"
DEFAULT_ACCOUNT = "device-key"


def derive_device_id(public_key: bytes) -> str:
    """Return the device id for a raw public key."""
    return hashlib.sha256(public_key).hexdigest()


def _raw_public_key(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_private_key(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


@dataclass(frozen=True)
class DeviceIdentity:
    """Signing keypair plus the device id derived from its public key."""

    device_id: str
    public_key: bytes
    private_key: Ed25519PrivateKey

    @classmethod
    def generate(cls) -> "DeviceIdentity":
        return cls.from_private_key(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_key(cls, private_key: Ed25519PrivateKey) -> "DeviceIdentity":
        public_key = _raw_public_key(private_key)
        return cls(
            device_id=derive_device_id(public_key),
            public_key=public_key,
            private_key=private_key,
        )

    @property
    def public_key_base64(self) -> str:
        return base64.b64encode(self.public_key).decode("ascii")

    def to_record(self) -> str:
        """Serialize to the JSON record kept in the secure store."""
        return json.dumps(
            {
                "deviceId": self.device_id,
                "publicKey": self.public_key_base64,
                "privateKey": base64.b64encode(_raw_private_key(self.private_key)).decode("ascii"),
            }
        )

    @classmethod
    def from_record(cls, record: str) -> "DeviceIdentity":
        """Parse a stored record, raising IdentityCorruptedError when it is not well-formed."""
        try:
            data = json.loads(record)
        except (TypeError, ValueError) as e:
            raise IdentityCorruptedError("Corrupted device identity: invalid JSON") from e

        if not isinstance(data, dict):
            raise IdentityCorruptedError("Corrupted device identity: not an object")

        device_id = data.get("deviceId")
        public_b64 = data.get("publicKey")
        private_b64 = data.get("privateKey")
        if not all(isinstance(v, str) for v in (device_id, public_b64, private_b64)):
            raise IdentityCorruptedError("Corrupted device identity: missing fields")

        try:
            public_key = base64.b64decode(public_b64, validate=True)
            private_bytes = base64.b64decode(private_b64, validate=True)
            private_key = Ed25519PrivateKey.from_private_bytes(private_bytes)
        except (binascii.Error, ValueError) as e:
            raise IdentityCorruptedError("Corrupted device identity: invalid key material") from e

        if _raw_public_key(private_key) != public_key:
            raise IdentityCorruptedError("Corrupted device identity: public key mismatch")
        if derive_device_id(public_key) != device_id:
            raise IdentityCorruptedError("Corrupted device identity: device id mismatch")

        return cls(device_id=device_id, public_key=public_key, private_key=private_key)


class DeviceIdentityStore:
    """Persists the device identity under a fixed service/account pair."""

    def __init__(self, service: str = DEFAULT_SERVICE, account: str = DEFAULT_ACCOUNT) -> None:
        self.service = service
        self.account = account
        self.logger = create_contextual_logger(__name__, service="device_identity")

    @classmethod
    def from_config(cls, config) -> "DeviceIdentityStore":
        return cls(service=config.identity_service, account=config.identity_account)

    def load(self) -> Optional[DeviceIdentity]:
        """Return the stored identity, or None on first run.

        Raises:
            IdentityStoreError: the secure store could not be read.
            IdentityCorruptedError: a record exists but is not usable.
        """
        try:
            record = keyring.get_password(self.service, self.account)
        except KeyringError as e:
            raise IdentityStoreError(f"Failed to read device identity: {e}") from e

        if record is None:
            return None
        return DeviceIdentity.from_record(record)

    def save(self, identity: DeviceIdentity) -> None:
        try:
            keyring.set_password(self.service, self.account, identity.to_record())
        except KeyringError as e:
            raise IdentityStoreError(f"Failed to save device identity: {e}") from e

    def delete(self) -> None:
        """Remove any stored identity. Missing entries are not an error."""
        try:
            keyring.delete_password(self.service, self.account)
        except PasswordDeleteError:
            pass
        except KeyringError as e:
            raise IdentityStoreError(f"Failed to delete device identity: {e}") from e
        self.logger.info("Device identity deleted", account=self.account)

    def load_or_create(self) -> DeviceIdentity:
        """Return the persisted identity, generating and saving a new one when needed.

        A corrupted record is replaced. Store failures propagate so that a
        transient backend problem never silently replaces a paired identity.
        """
        try:
            identity = self.load()
        except IdentityCorruptedError as e:
            self.logger.warning("Stored device identity is corrupted, regenerating", error=str(e))
            identity = None

        if identity is not None:
            return identity

        identity = DeviceIdentity.generate()
        self.save(identity)
        self.logger.info(
            "Created new device identity; approve it on the gateway to pair",
            device_id=identity.device_id,
        )
        return identity
