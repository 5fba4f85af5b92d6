"""Docker secrets support for OAuth client credentials"""

import logging
import os
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

SECRETS_DIR = Path("/run/secrets")


def load_secret(secret_name: str, default: Optional[str] = None,
                secrets_dir: Path = SECRETS_DIR) -> Optional[str]:
    """Load a secret from Docker secrets or environment variable.

    Checks in order:
    1. {secrets_dir}/{secret_name lowercased}
    2. Environment variable {secret_name}
    3. Default value

    Args:
        secret_name: Name of the secret/environment variable
        default: Default value if secret not found
        secrets_dir: Directory holding mounted secrets

    Returns:
        Secret value or default
    """
    secret_path = secrets_dir / secret_name.lower()
    if secret_path.is_file():
        try:
            return secret_path.read_text().strip()
        except OSError as e:
            logger.warning("Could not read secret %s: %s", secret_path, e)

    value = os.getenv(secret_name, default)
    return value if value else default
