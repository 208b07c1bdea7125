"""Challenge signing for the gateway handshake.

The canonical message is plain pipe-delimited text built only from values the
gateway already knows (device id, fixed client fields, timestamp, token,
nonce), so the gateway can rebuild it and verify the signature.
"""

import base64
import binascii
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from models.protocol import (
    CLIENT_ID,
    CLIENT_MODE,
    CLIENT_ROLE,
    CLIENT_SCOPES,
    SIGNATURE_VERSION,
)
from .errors import SigningEncodingError, SigningError


def build_signing_message(
    device_id: str,
    nonce: str,
    timestamp_ms: int,
    token: Optional[str] = None,
) -> str:
    """Build the canonical string signed in response to a challenge.

    Field order: version, device id, client id, mode, role, scopes,
    timestamp, token (empty when absent), nonce.
    """
    fields = [
        SIGNATURE_VERSION,
        device_id,
        CLIENT_ID,
        CLIENT_MODE,
        CLIENT_ROLE,
        ",".join(sorted(CLIENT_SCOPES)),
        str(int(timestamp_ms)),
        token or "",
        nonce,
    ]
    return "|".join(fields)


def sign_message(message: str, private_key: Ed25519PrivateKey) -> str:
    """Sign ``message`` and return the base64-encoded signature.

    Raises:
        SigningEncodingError: the message cannot be encoded as UTF-8.
        SigningError: the signing operation itself failed.
    """
    try:
        data = message.encode("utf-8")
    except (UnicodeEncodeError, AttributeError) as e:
        raise SigningEncodingError(f"Cannot encode signing message: {e}") from e

    try:
        signature = private_key.sign(data)
    except Exception as e:
        raise SigningError(f"Failed to sign challenge: {e}") from e

    return base64.b64encode(signature).decode("ascii")


def verify_signature(message: str, signature_b64: str, public_key: bytes) -> bool:
    """Check a base64 signature against a raw Ed25519 public key."""
    try:
        key = Ed25519PublicKey.from_public_bytes(public_key)
        key.verify(base64.b64decode(signature_b64, validate=True), message.encode("utf-8"))
    except (InvalidSignature, ValueError, binascii.Error):
        return False
    return True
