"""Secret generation for n8n deployments."""

from cryptography.fernet import Fernet


class SecretGenerator:
    """Generates cryptographically secure secrets for n8n."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def generate_encryption_key(self) -> str:
        """
        Generate a value for ``N8N_ENCRYPTION_KEY``.

        Returns:
            str: URL-safe base64 of 32 random bytes (a Fernet key)
        """
        return Fernet.generate_key().decode("ascii")
