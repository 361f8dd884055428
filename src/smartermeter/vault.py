"""
Credential Vault
Reversible at-rest encoding for the stored password.

The encoding is Blowfish (ECB, NUL padded) under a constant key followed by
base64. The key ships with the code, so anyone holding the config file can
recover the password. Existing config files depend on this exact scheme.
"""
import base64
from typing import Optional

from cryptography.hazmat.decrepit.ciphers.algorithms import Blowfish
from cryptography.hazmat.primitives.ciphers import Cipher, modes

KEY = b"Our easily discoverable key."
BLOCK_SIZE = 8
# Line length used by the base64 encoder that wrote the existing config files
LINE_LENGTH = 60


class CredentialVault:
    """Encodes and decodes the password field of the configuration"""

    def __init__(self, key: bytes = KEY):
        self._cipher = Cipher(Blowfish(key), modes.ECB())

    def encode(self, clear_text: str) -> str:
        """
        Encrypt and base64 encode a clear-text password

        Args:
            clear_text: The password as typed by the user

        Returns:
            Base64 text, wrapped at 60 characters with a trailing newline
        """
        data = clear_text.encode("utf-8")
        if len(data) % BLOCK_SIZE:
            data += b"\0" * (BLOCK_SIZE - len(data) % BLOCK_SIZE)

        encryptor = self._cipher.encryptor()
        encrypted = encryptor.update(data) + encryptor.finalize()

        encoded = base64.b64encode(encrypted).decode("ascii")
        lines = [encoded[i:i + LINE_LENGTH] for i in range(0, len(encoded), LINE_LENGTH)]
        return "".join(line + "\n" for line in lines)

    def decode(self, encoded: Optional[str]) -> Optional[str]:
        """
        Reverse encode(), stripping the NUL padding

        Returns None when no secret is stored.
        """
        if encoded is None:
            return None

        encrypted = base64.b64decode(encoded)
        if len(encrypted) % BLOCK_SIZE:
            encrypted = encrypted[:len(encrypted) - len(encrypted) % BLOCK_SIZE]

        decryptor = self._cipher.decryptor()
        data = decryptor.update(encrypted) + decryptor.finalize()
        return data.replace(b"\0", b"").decode("utf-8")
