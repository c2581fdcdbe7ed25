"""
Dataset downloader.

Fetches the reference datasets into ``datasets_dir`` once and reuses the
cached copies on later runs. Zip archives (template repositories) are
extracted into a directory.
"""

import io
import zipfile
from pathlib import Path

import httpx
import structlog
from pydantic import BaseModel
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from nda_pipeline.config import get_settings
from nda_pipeline.datasets.sources import DatasetSource
from nda_pipeline.exceptions import ApiError, is_retriable_error

logger = structlog.get_logger(__name__)

DATASET_URLS: dict[DatasetSource, str] = {
    DatasetSource.CUAD: "https://huggingface.co/datasets/cuad/resolve/main/CUAD_v1.parquet",
    DatasetSource.CONTRACT_NLI: "https://huggingface.co/datasets/kiddothe2b/contract-nli/resolve/main/train.json",
    DatasetSource.BONTERMS: "https://github.com/Bonterms/Mutual-NDA/archive/refs/heads/main.zip",
    DatasetSource.COMMONACCORD: "https://github.com/CommonAccord/NW-NDA/archive/refs/heads/master.zip",
}

DATASET_PATHS: dict[DatasetSource, str] = {
    DatasetSource.CUAD: "CUAD_v1.parquet",
    DatasetSource.CONTRACT_NLI: "contract_nli.json",
    DatasetSource.BONTERMS: "bonterms-nda",
    DatasetSource.COMMONACCORD: "commonaccord-nda",
}


class DownloadResult(BaseModel):
    source: DatasetSource
    path: Path
    cached: bool
    size_bytes: int


def get_dataset_path(source: DatasetSource, datasets_dir: Path | None = None) -> Path:
    """Local path of a dataset file or directory."""
    base = datasets_dir or get_settings().datasets_dir
    return base / DATASET_PATHS[source]


def _path_size(path: Path) -> int:
    if path.is_dir():
        return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())
    return path.stat().st_size


class DatasetDownloader:
    """Downloads and caches reference datasets."""

    def __init__(self, datasets_dir: Path | None = None, http_client: httpx.AsyncClient | None = None):
        self.datasets_dir = datasets_dir or get_settings().datasets_dir
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=120.0, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def download(self, source: DatasetSource, force_refresh: bool = False) -> DownloadResult:
        """Download ``source`` unless a cached copy exists."""
        self.datasets_dir.mkdir(parents=True, exist_ok=True)
        path = get_dataset_path(source, self.datasets_dir)

        if path.exists() and not force_refresh:
            logger.info("dataset_cached", source=source.value, path=str(path))
            return DownloadResult(source=source, path=path, cached=True, size_bytes=_path_size(path))

        url = DATASET_URLS[source]
        content = await self._fetch(url)

        if url.endswith(".zip"):
            path.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                archive.extractall(path)
        else:
            path.write_bytes(content)

        logger.info("dataset_downloaded", source=source.value, path=str(path), bytes=len(content))
        return DownloadResult(source=source, path=path, cached=False, size_bytes=_path_size(path))

    async def download_all(
        self,
        sources: list[DatasetSource],
        force_refresh: bool = False,
    ) -> list[DownloadResult]:
        return [await self.download(source, force_refresh) for source in sources]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(is_retriable_error),
        reraise=True,
    )
    async def _fetch(self, url: str) -> bytes:
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise ApiError("dataset-download", f"request to {url} failed: {e}") from e
        if response.status_code >= 400:
            raise ApiError(
                "dataset-download",
                f"{url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.content
