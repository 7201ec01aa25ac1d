"""
Asset Pipeline
==============
Downloads images and PDFs from the legacy host, optionally re-encodes images,
uploads them to Sanity and remembers ``source URL → asset ID`` on disk.

The cache file is the resumability contract: it is rewritten whole (temp file
+ rename) after every successful upload, so an interrupted run never leaves
invalid JSON behind and a re-run skips everything already uploaded.
"""

from __future__ import annotations

import hashlib
import io
import json
import mimetypes
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urljoin, urlsplit

import requests
import urllib3
from PIL import Image, UnidentifiedImageError
from requests.utils import requote_uri

from audiofast_migration.config import ImageProfile
from audiofast_migration.errors import SanityError
from audiofast_migration.logging_config import get_logger

if TYPE_CHECKING:
    from audiofast_migration.config import LegacyConfig
    from audiofast_migration.engine.sanity_client import SanityClient

logger = get_logger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)

_FORMAT_CONTENT_TYPES = {"WEBP": "image/webp", "JPEG": "image/jpeg", "PNG": "image/png", "AVIF": "image/avif"}
_FORMAT_EXTENSIONS = {"WEBP": ".webp", "JPEG": ".jpg", "PNG": ".png", "AVIF": ".avif"}

# Product CSVs reference "produkty/<Brand>/x.png" while some files live at "produkty/x.png"
_BRAND_SUBFOLDER_RE = re.compile(r"/produkty/[^/]+/([^/]+)$")


# =============================================================================
# Cache
# =============================================================================


@dataclass
class AssetCacheEntry:
    asset_id: str
    original_size: int = 0
    optimized_size: int = 0
    uploaded_at: str = field(default_factory=lambda: datetime.now(tz=timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "assetId": self.asset_id,
            "originalSize": self.original_size,
            "optimizedSize": self.optimized_size,
            "uploadedAt": self.uploaded_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssetCacheEntry:
        return cls(
            asset_id=data["assetId"],
            original_size=int(data.get("originalSize", 0)),
            optimized_size=int(data.get("optimizedSize", 0)),
            uploaded_at=data.get("uploadedAt", ""),
        )


class AssetCache:
    """JSON-file backed ``source URL → AssetCacheEntry`` map (one entry per URL)."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._entries: dict[str, AssetCacheEntry] = {}
        self._dirty = False
        self.hits = 0

    @classmethod
    def load(cls, path: Path | None) -> AssetCache:
        cache = cls(path)
        if path is None or not path.exists():
            return cache
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("asset_cache_unreadable", path=str(path), error=str(e))
            return cache
        for url, entry in raw.items():
            try:
                cache._entries[url] = AssetCacheEntry.from_dict(entry)
            except (KeyError, TypeError, ValueError):
                logger.warning("asset_cache_entry_invalid", url=url)
        logger.info("asset_cache_loaded", path=str(path), entries=len(cache._entries))
        return cache

    def get(self, url: str) -> AssetCacheEntry | None:
        entry = self._entries.get(url)
        if entry is not None:
            self.hits += 1
        return entry

    def put(self, url: str, entry: AssetCacheEntry) -> None:
        self._entries[url] = entry
        self._dirty = True

    def save(self) -> None:
        """Rewrite the whole cache file atomically."""
        if self.path is None or not self._dirty:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {url: e.to_dict() for url, e in self._entries.items()}
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        self._dirty = False

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Download
# =============================================================================


@dataclass
class Download:
    url: str
    data: bytes
    content_type: str = ""


class LegacyDownloader:
    """
    HTTP downloader for the legacy host.

    The legacy server presents an invalid certificate, so verification is
    switched off here (and only here). Redirects are followed by hand so that
    relative ``Location`` headers resolve against the requesting URL.
    """

    def __init__(
        self,
        *,
        verify_tls: bool = False,
        timeout: int = 60,
        max_redirects: int = 3,
        session: requests.Session | None = None,
    ) -> None:
        self.verify_tls = verify_tls
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.session = session or requests.Session()
        if not verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @classmethod
    def from_config(cls, cfg: LegacyConfig) -> LegacyDownloader:
        return cls(verify_tls=cfg.verify_tls, timeout=cfg.timeout, max_redirects=cfg.max_redirects)

    def _get(self, url: str) -> Download | None:
        current = url
        for _ in range(self.max_redirects + 1):
            try:
                resp = self.session.get(current, verify=self.verify_tls, timeout=self.timeout, allow_redirects=False)
            except requests.RequestException as e:
                logger.warning("download_failed", url=current, error=str(e))
                return None
            if resp.status_code in REDIRECT_STATUSES:
                location = resp.headers.get("Location")
                if not location:
                    logger.warning("download_redirect_without_location", url=current)
                    return None
                current = urljoin(current, location)
                continue
            if resp.status_code != 200:
                logger.warning("download_http_error", url=current, status=resp.status_code)
                return None
            if not resp.content:
                logger.warning("download_empty", url=current)
                return None
            content_type = resp.headers.get("Content-Type", "").split(";")[0].strip()
            return Download(url=current, data=resp.content, content_type=content_type)
        logger.warning("download_too_many_redirects", url=url, max_redirects=self.max_redirects)
        return None

    def download(self, url: str) -> Download | None:
        """Fetch *url*, trying known alternative locations; ``None`` on any failure."""
        for candidate in alternative_urls(url):
            result = self._get(candidate)
            if result is not None:
                return result
        return None


def alternative_urls(url: str) -> list[str]:
    urls = [url]
    m = _BRAND_SUBFOLDER_RE.search(url)
    if m:
        alt = url[: m.start()] + f"/produkty/{m.group(1)}"
        if alt != url:
            urls.append(alt)
    return urls


# =============================================================================
# Transcoding
# =============================================================================


def transcode_image(data: bytes, profile: ImageProfile) -> bytes | None:
    """
    Resize within the profile's bounds and re-encode.

    ``thumbnail`` only ever shrinks, so small images keep their native size.
    Returns ``None`` for data Pillow cannot (or should not) re-encode, such as
    SVGs or animated GIFs; the caller then uploads the original bytes.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            if getattr(img, "is_animated", False):
                return None
            img.load()
            if img.mode not in ("RGB", "RGBA"):
                has_alpha = img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info)
                img = img.convert("RGBA" if has_alpha else "RGB")
            img.thumbnail((profile.max_width, profile.max_height), Image.Resampling.LANCZOS)
            out = io.BytesIO()
            fmt = profile.format.upper()
            if fmt == "JPEG" and img.mode == "RGBA":
                img = img.convert("RGB")
            img.save(out, format=fmt, quality=profile.quality)
            return out.getvalue()
    except Image.DecompressionBombError as e:
        logger.warning("transcode_refused_oversized", error=str(e))
        return None
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug("transcode_skipped", error=str(e))
        return None


# =============================================================================
# Pipeline
# =============================================================================


def filename_from_url(url: str) -> str:
    name = PurePosixPath(unquote(urlsplit(url).path)).name
    return name or "asset"


class AssetPipeline:
    """
    Cache-first download → transcode → upload for one family of assets.

    Args:
        store: Sanity client used for uploads (may be ``None`` in dry-run)
        cache: persistent URL → asset ID map
        downloader: legacy host downloader
        profile: default image profile; ``None`` disables transcoding
        base_url: base for relative paths passed to :meth:`fetch_and_upload`
        dry_run: never touch the network, return deterministic mock IDs
    """

    def __init__(
        self,
        store: SanityClient | None,
        cache: AssetCache,
        downloader: LegacyDownloader | None,
        profile: ImageProfile | None = None,
        *,
        base_url: str = "https://audiofast.pl/assets/",
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.cache = cache
        self.downloader = downloader
        self.profile = profile
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.dry_run = dry_run
        self.uploaded = 0
        self.failed = 0

    def normalize_url(self, url_or_path: str) -> str:
        value = url_or_path.strip()
        if not value.startswith(("http://", "https://")):
            value = urljoin(self.base_url, value.lstrip("/"))
        return requote_uri(value)

    def fetch_and_upload(
        self,
        url_or_path: str | None,
        kind: str = "image",
        profile: ImageProfile | None = None,
        filename: str | None = None,
    ) -> str | None:
        """
        Return the target asset ID for a legacy asset, uploading it if needed.

        Returns ``None`` (with a warning) when the asset cannot be fetched or
        uploaded; callers carry on without it.
        """
        if not url_or_path or not url_or_path.strip():
            return None
        url = self.normalize_url(url_or_path)

        cached = self.cache.get(url)
        if cached is not None:
            logger.debug("asset_cache_hit", url=url, asset_id=cached.asset_id)
            return cached.asset_id

        if self.dry_run:
            return f"{kind}-dryrun-{hashlib.sha1(url.encode('utf-8')).hexdigest()[:10]}"

        if self.downloader is None or self.store is None:
            logger.warning("asset_pipeline_offline", url=url)
            return None

        try:
            download = self.downloader.download(url)
        except Exception as e:
            logger.warning("download_failed", url=url, error=f"{type(e).__name__}: {e}", exc_info=True)
            download = None
        if download is None:
            self.failed += 1
            return None

        name = filename or filename_from_url(download.url)
        original_type = download.content_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        payload, content_type, upload_name = download.data, original_type, name

        active_profile = profile or self.profile
        if kind == "image" and active_profile is not None:
            try:
                optimized = transcode_image(download.data, active_profile)
            except Exception as e:
                logger.warning("transcode_failed", url=url, error=f"{type(e).__name__}: {e}")
                optimized = None
            if optimized is not None:
                fmt = active_profile.format.upper()
                payload = optimized
                content_type = _FORMAT_CONTENT_TYPES.get(fmt, original_type)
                upload_name = str(PurePosixPath(name).with_suffix(_FORMAT_EXTENSIONS.get(fmt, "")))

        asset_id = self._upload(kind, payload, upload_name, content_type, url)
        if asset_id is None and payload is not download.data:
            logger.info("asset_upload_retry_original", url=url)
            payload = download.data
            asset_id = self._upload(kind, payload, name, original_type, url)
        if asset_id is None:
            self.failed += 1
            return None

        self.cache.put(
            url,
            AssetCacheEntry(asset_id=asset_id, original_size=len(download.data), optimized_size=len(payload)),
        )
        self.cache.save()
        self.uploaded += 1
        logger.info(
            "asset_uploaded",
            url=url,
            asset_id=asset_id,
            original_size=len(download.data),
            optimized_size=len(payload),
        )
        return asset_id

    def _upload(self, kind: str, data: bytes, filename: str, content_type: str, url: str) -> str | None:
        try:
            return self.store.upload_asset(kind, data, filename, content_type)  # type: ignore[union-attr]
        except SanityError as e:
            logger.warning("asset_upload_failed", url=url, error=str(e), status=e.status_code)
            return None
        except Exception as e:
            logger.warning("asset_upload_failed", url=url, error=f"{type(e).__name__}: {e}", exc_info=True)
            return None

    def save(self) -> None:
        self.cache.save()
