from __future__ import annotations

from dataclasses import dataclass
import os
from urllib.parse import quote

from pipeline.http import post

PROVIDER = "supabase"


@dataclass(frozen=True)
class StorageConfig:
    url: str
    service_key: str
    timeout_s: int


def load_storage_config() -> StorageConfig:
    url = os.getenv("SUPABASE_URL", "").strip().rstrip("/")
    service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
    if not url or not service_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return StorageConfig(
        url=url,
        service_key=service_key,
        timeout_s=int(os.getenv("SUPABASE_TIMEOUT_S", "60")),
    )


class SupabaseStorage:
    def __init__(self, config: StorageConfig) -> None:
        self._config = config

    def upload(self, bucket: str, name: str, data: bytes, content_type: str) -> None:
        config = self._config
        post(
            f"{config.url}/storage/v1/object/{quote(bucket)}/{quote(name)}",
            body=data,
            headers={
                "Authorization": f"Bearer {config.service_key}",
                "apikey": config.service_key,
                "Content-Type": content_type,
                "x-upsert": "true",
            },
            provider=PROVIDER,
            timeout_s=config.timeout_s,
        )

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self._config.url}/storage/v1/object/public/{quote(bucket)}/{quote(name)}"
