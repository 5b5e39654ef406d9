from __future__ import annotations

from objstore.common.config import Settings


class EnvironmentSecretStore:
    """Serves ``S3_*`` settings under the field names Vault stores them with.

    Lets the credential provider read one shape regardless of whether the
    deployment keeps secrets in Vault or in the process environment.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def fetch_secret(self, path: str) -> dict[str, str]:
        values = {
            "url": self._settings.S3_ENDPOINT_URL,
            "username": self._settings.S3_ACCESS_KEY_ID,
            "password": self._settings.S3_SECRET_ACCESS_KEY,
            "bucket": self._settings.S3_BUCKET,
            "region": self._settings.S3_REGION,
        }
        return {key: value for key, value in values.items() if value}
