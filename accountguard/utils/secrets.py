"""
Secrets lookup for AccountGuard.

Secrets come from two places:
1. Docker secrets files (production), via {NAME}_FILE or /run/secrets/{name}
2. Environment variables (development)

Usage:
    from accountguard.utils.secrets import get_secret

    db_password = get_secret("POSTGRES_PASSWORD")
"""
import os
import logging
from typing import Optional
from functools import lru_cache

logger = logging.getLogger(__name__)

DOCKER_SECRETS_DIR = "/run/secrets"


def _read_secret_file(path: str) -> Optional[str]:
    try:
        with open(path, 'r') as f:
            return f.read().strip()
    except OSError as e:
        logger.warning(f"Failed to read secret file {path}: {e}")
        return None


@lru_cache(maxsize=32)
def get_secret(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Get a secret value, file sources first.

    Priority:
    1. {NAME}_FILE environment variable (path to file containing secret)
    2. {NAME} environment variable
    3. /run/secrets/{name.lower()}
    4. Default value

    Args:
        name: Secret name (e.g., "POSTGRES_PASSWORD")
        default: Default value if secret not found

    Returns:
        Secret value or default
    """
    file_path = os.environ.get(f"{name}_FILE")
    if file_path and os.path.isfile(file_path):
        secret = _read_secret_file(file_path)
        if secret is not None:
            logger.debug(f"Loaded secret {name} from file")
            return secret

    env_value = os.environ.get(name)
    if env_value:
        logger.debug(f"Loaded secret {name} from environment")
        return env_value

    docker_secret_path = os.path.join(DOCKER_SECRETS_DIR, name.lower())
    if os.path.isfile(docker_secret_path):
        secret = _read_secret_file(docker_secret_path)
        if secret is not None:
            logger.debug(f"Loaded secret {name} from Docker secrets")
            return secret

    if default is None:
        logger.warning(f"Secret {name} not found, no default provided")
    return default


def get_required_secret(name: str) -> str:
    """
    Get a required secret.

    Raises:
        ValueError: If secret not found
    """
    value = get_secret(name)
    if value is None:
        raise ValueError(
            f"Required secret '{name}' not found. "
            f"Set {name} or {name}_FILE environment variable."
        )
    return value


def mask_secret(secret: Optional[str], visible_chars: int = 4) -> str:
    """
    Mask a secret (token, email, TOTP secret) for safe logging.

    Returns:
        Masked string like "abc...xyz", or "***" for short values
    """
    if not secret or len(secret) <= visible_chars * 2:
        return "***"
    return f"{secret[:visible_chars]}...{secret[-visible_chars:]}"
