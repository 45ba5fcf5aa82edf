"""
Decoding and validation of TLS Secret contents.

Turns the base64 ``data`` map of a ``kubernetes.io/tls`` Secret into
CredentialMaterial, checking that the certificate chain and private key
parse as PEM and belong together.
"""
import base64
import binascii
import logging
from typing import Mapping, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization

from .errors import SecretMalformedError
from .models import CredentialMaterial


logger = logging.getLogger(__name__)

CERT_KEY = "tls.crt"
PRIVATE_KEY_KEY = "tls.key"


def decode_field(data: Mapping[str, str], key: str) -> bytes:
    """
    Base64-decode one field of a Secret's data map.

    Raises:
        SecretMalformedError: If the field is absent, empty or not valid base64,
            or if the decoded bytes are not UTF-8 text
    """
    encoded = data.get(key)
    if not encoded:
        raise SecretMalformedError(f"{key} not found in secret")
    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise SecretMalformedError(f"{key} is not valid base64")
    if not decoded.strip():
        raise SecretMalformedError(f"{key} is empty")
    # The Linode API takes the PEM text as a JSON string
    try:
        decoded.decode("utf-8")
    except UnicodeDecodeError:
        raise SecretMalformedError(f"{key} is not valid UTF-8 text")
    return decoded


def certificate_fingerprint(cert: x509.Certificate) -> str:
    """SHA-256 fingerprint as colon separated upper-case hex."""
    return cert.fingerprint(hashes.SHA256()).hex(":").upper()


def validate_pem_pair(cert_pem: bytes, key_pem: bytes) -> x509.Certificate:
    """
    Check the certificate chain and private key parse and match.

    Args:
        cert_pem: PEM-encoded leaf certificate, optionally followed by its chain
        key_pem: PEM-encoded unencrypted private key

    Returns:
        The parsed leaf certificate

    Raises:
        SecretMalformedError: If either block fails to parse or the key
            does not belong to the leaf certificate
    """
    try:
        chain = x509.load_pem_x509_certificates(cert_pem)
    except ValueError as e:
        raise SecretMalformedError(f"{CERT_KEY} is not a PEM certificate: {e}")
    leaf = chain[0]

    try:
        key = serialization.load_pem_private_key(key_pem, password=None)
    except (ValueError, TypeError) as e:
        raise SecretMalformedError(f"{PRIVATE_KEY_KEY} is not an unencrypted PEM private key: {e}")

    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    der = serialization.Encoding.DER
    if leaf.public_key().public_bytes(der, spki) != key.public_key().public_bytes(der, spki):
        raise SecretMalformedError(f"{PRIVATE_KEY_KEY} does not match {CERT_KEY}")

    return leaf


def material_from_secret_data(
    data: Optional[Mapping[str, str]],
    namespace: str,
    name: str,
) -> CredentialMaterial:
    """
    Build CredentialMaterial from a Secret's base64 data map.

    Raises:
        SecretMalformedError: If the Secret has no usable certificate/key pair
    """
    if not data:
        raise SecretMalformedError("secret has no data")

    cert_pem = decode_field(data, CERT_KEY)
    key_pem = decode_field(data, PRIVATE_KEY_KEY)
    leaf = validate_pem_pair(cert_pem, key_pem)

    fingerprint = certificate_fingerprint(leaf)
    logger.debug(
        "[SECRETS] Decoded certificate from %s/%s: subject=%s fingerprint=%s",
        namespace, name, leaf.subject.rfc4514_string(), fingerprint,
    )
    return CredentialMaterial(
        certificate_pem=cert_pem,
        private_key_pem=key_pem,
        namespace=namespace,
        name=name,
        fingerprint=fingerprint,
    )
