import json
import boto3
import os
import time
from typing import Any, Dict, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Settings field -> "<name>-api-key" secret in Secrets Manager
API_KEY_SECRETS = {
    "ai_gateway_api_key": "ai-gateway",
    "openai_api_key": "openai",
    "valyu_api_key": "valyu",
    "daytona_api_key": "daytona",
    "polar_access_token": "polar",
}

# Settings field -> key inside the RDS credentials secret
DB_CREDENTIAL_FIELDS = {
    "db_username": "username",
    "db_password": "password",
}

class SecretsManager:
    """
    Resolves the production credentials (provider API keys and the RDS
    login) from AWS Secrets Manager.

    Values are cached for ``cache_ttl`` seconds so rotated keys are picked up
    without a restart. When a refresh fails the stale value is served.
    """

    def __init__(self, region_name: str = None, cache_ttl: int = 300):
        self.region_name = region_name or os.environ.get('AWS_REGION', 'us-east-1')
        self.cache_ttl = cache_ttl
        self._client = None
        self._cache: Dict[str, Tuple[float, Any]] = {}

    @property
    def client(self):
        """Lazy-loaded Secrets Manager client"""
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                service_name='secretsmanager',
                region_name=self.region_name
            )
        return self._client

    def clear_cache(self):
        logger.info("Clearing secrets cache")
        self._cache.clear()

    def get_secret(self, secret_id: str) -> str:
        cached = self._cache.get(secret_id)
        if cached and time.time() - cached[0] < self.cache_ttl:
            return cached[1]

        logger.info(f"🔑 Fetching secret {secret_id}")
        try:
            response = self.client.get_secret_value(SecretId=secret_id)
        except Exception as e:
            if cached:
                logger.warning(f"Refreshing {secret_id} failed, serving cached value: {e}")
                return cached[1]
            logger.error(f"Failed to get secret {secret_id}: {e}")
            raise

        value = response.get('SecretString') or response.get('SecretBinary')
        self._cache[secret_id] = (time.time(), value)
        return value

    def get_json_secret(self, secret_id: str) -> Dict[str, Any]:
        return json.loads(self.get_secret(secret_id))

    def get_db_credentials(self) -> Dict[str, str]:
        """RDS-managed secret with username, password, host, port and dbname."""
        return self.get_json_secret(os.environ.get('DATABASE_SECRETS_NAME', 'patent-explorer-db'))

    def get_api_key(self, service_name: str) -> str:
        return self.get_secret(f'{service_name}-api-key')

    def resolve(self, field_name: str) -> Optional[str]:
        """
        Value for a ``Settings`` credential field, or None when the field is
        not kept in Secrets Manager.
        """
        if field_name in API_KEY_SECRETS:
            return self.get_api_key(API_KEY_SECRETS[field_name])
        if field_name in DB_CREDENTIAL_FIELDS:
            return self.get_db_credentials()[DB_CREDENTIAL_FIELDS[field_name]]
        return None
