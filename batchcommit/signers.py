"""
Application signing keys for batchcommit.

The remote host authenticates the application itself with an RS256-signed
assertion. The key is the RSA private key issued when the application was
registered.
"""

from pathlib import Path

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from batchcommit.exceptions import CredentialError

_MIN_KEY_SIZE = 2048


class AppKeySigner:
    """RSA (PKCS#1 v1.5, SHA-256) signer for application assertions."""

    def __init__(self, private_key: rsa.RSAPrivateKey) -> None:
        """
        Initialize with an RSA private key.

        Args:
            private_key: RSA private key from cryptography library

        Raises:
            CredentialError: If the key is too short to be accepted by the host
        """
        if private_key.key_size < _MIN_KEY_SIZE:
            raise CredentialError(
                "MALFORMED_SIGNING_KEY",
                f"Application key must be at least {_MIN_KEY_SIZE} bits, got {private_key.key_size}",
            )
        self._private_key = private_key
        self._public_key = private_key.public_key()

    @property
    def private_key(self) -> rsa.RSAPrivateKey:
        """The underlying key object, as accepted by PyJWT for RS256."""
        return self._private_key

    def sign(self, message: bytes) -> bytes:
        """Sign a message with RSASSA-PKCS1-v1_5 / SHA-256."""
        return self._private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())

    def verify(self, signature: bytes, message: bytes) -> bool:
        """Verify a signature (for testing purposes)."""
        try:
            self._public_key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
            return True
        except InvalidSignature:
            return False

    def public_key_pem(self) -> str:
        """Return the public key in PEM format."""
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()

    def private_key_pem(self) -> str:
        """Return the private key in PEM format (for storage)."""
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()

    @classmethod
    def from_pem(cls, pem_string: str) -> "AppKeySigner":
        """
        Load a signer from a PEM string.

        Accepts both PKCS#1 ("BEGIN RSA PRIVATE KEY", as downloaded from the
        host) and PKCS#8 encodings. Literal ``\\n`` escapes, common when the
        key travels through an environment variable, are expanded.

        Args:
            pem_string: PEM-encoded RSA private key

        Returns:
            AppKeySigner instance

        Raises:
            CredentialError: If the key is malformed or not an RSA key
        """
        pem = pem_string.strip().replace("\\n", "\n")
        try:
            private_key = serialization.load_pem_private_key(pem.encode(), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            # The loader's message never contains key material
            raise CredentialError(
                "MALFORMED_SIGNING_KEY",
                f"Application private key could not be loaded: {e}",
            ) from e

        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise CredentialError(
                "MALFORMED_SIGNING_KEY",
                f"Expected RSA private key, got {type(private_key).__name__}",
            )

        return cls(private_key)

    @classmethod
    def from_pem_file(cls, path: str | Path) -> "AppKeySigner":
        """
        Load a signer from a PEM file.

        Raises:
            CredentialError: If the file is unreadable or the key malformed
        """
        path = Path(path)
        try:
            pem_data = path.read_text()
        except OSError as e:
            raise CredentialError(
                "MALFORMED_SIGNING_KEY",
                f"Application private key file could not be read: {path}",
            ) from e
        return cls.from_pem(pem_data)

    @classmethod
    def generate(cls, key_size: int = _MIN_KEY_SIZE) -> "AppKeySigner":
        """Generate a new RSA key (tests and local development)."""
        return cls(rsa.generate_private_key(public_exponent=65537, key_size=key_size))
