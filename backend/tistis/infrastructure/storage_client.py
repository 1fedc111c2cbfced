"""Object Storage Client: uploads to the platform's storage buckets over REST.

Invariants:
    - Uploads use the service-role key (bypasses row-level policies); never a user token
    - Object paths are always tenant-prefixed by the caller ({tenant_id}/...)
    - Upload with x-upsert so regenerating a report overwrites the same path
"""

from urllib.parse import quote

from tistis.core.errors import ErrorContext, ServiceNotConfiguredError
from tistis.infrastructure.resilient_http import ResilientHttpClient


class StorageClient:
    def __init__(
        self, base_url: str, service_key: str, http: ResilientHttpClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.http = http or ResilientHttpClient("storage", base_url=self.base_url)

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/pdf",
        context: ErrorContext | None = None,
    ) -> str:
        """Upload bytes and return the object's public URL."""
        if not self.service_key:
            raise ServiceNotConfiguredError("Storage", "STORAGE_NOT_CONFIGURED", context)
        headers = self._headers(content_type)
        headers["x-upsert"] = "true"
        await self.http.post(
            f"/storage/v1/object/{bucket}/{quote(path)}",
            headers=headers,
            content=content,
            context=context,
        )
        return self.public_url(bucket, path)

    async def create_signed_url(
        self, bucket: str, path: str, expires_in: int = 3600,
        context: ErrorContext | None = None,
    ) -> str:
        response = await self.http.post(
            f"/storage/v1/object/sign/{bucket}/{quote(path)}",
            headers=self._headers("application/json"),
            json={"expiresIn": expires_in},
            context=context,
        )
        signed = response.json().get("signedURL") or response.json().get("signedUrl", "")
        return f"{self.base_url}/storage/v1{signed}"
