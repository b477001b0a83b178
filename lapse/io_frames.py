from typing import Callable, List, Optional, Sequence
from urllib.parse import urlparse
from urllib.request import url2pathname

import cv2
import numpy as np
import requests

from .clock import CancellationToken
from .config import AppConfig
from .errors import AssetLoadError, GenerationCancelledError
from .handles import HandleRegistry
from .types import LoadedAsset


DirectReader = Callable[[str], np.ndarray]

_FETCH_SCHEMES = ("http", "https")
_EXT_BY_TYPE = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/gif": ".gif",
}


def new_session(cfg: AppConfig) -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = cfg.fetch.user_agent
    return session


def fetch_blob(session: requests.Session, url: str, cfg: AppConfig, accept: str = "*/*") -> tuple[bytes, str]:
    """GET ``url`` without cookies; returns (body, content-type)."""
    scheme = urlparse(url).scheme.lower()
    if scheme not in _FETCH_SCHEMES:
        raise ValueError(f"fetch ne gère pas le schéma {scheme or '(aucun)'!r}")
    resp = session.get(url, timeout=cfg.fetch.timeout_s, headers={"Accept": accept}, cookies={})
    if not resp.ok:
        raise RuntimeError(f"HTTP {resp.status_code}: {resp.reason}")
    content_type = str(resp.headers.get("Content-Type", "")).split(";")[0].strip().lower()
    return resp.content, content_type


def read_direct(url: str) -> np.ndarray:
    """Second strategy: let OpenCV open the URL itself."""
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()

    # "C:\frames\a.png" parses with scheme "c"
    if scheme in ("", "file") or len(scheme) == 1:
        path = url2pathname(parsed.path) if scheme == "file" else url
        image = cv2.imread(path, cv2.IMREAD_COLOR)
        if image is None:
            raise FileNotFoundError(f"Image introuvable: {path}")
        return image

    if scheme in _FETCH_SCHEMES:
        cap = cv2.VideoCapture(url)
        try:
            ok, image = cap.read()
        finally:
            cap.release()
        if not ok or image is None:
            raise RuntimeError(f"OpenCV n'a pas pu lire {url}")
        return image

    raise ValueError(f"schéma non supporté: {scheme!r}")


class AssetLoader:
    """Resolve frame URLs into decoded images.

    Blob fetch first (the decoded temp file stays registered with the session
    until reclamation), direct read second. Both failing is fatal for the
    whole generation.
    """

    def __init__(
        self,
        cfg: AppConfig,
        registry: HandleRegistry,
        session: Optional[requests.Session] = None,
        direct_reader: Optional[DirectReader] = None,
    ):
        self.cfg = cfg
        self.registry = registry
        self.session = session if session is not None else new_session(cfg)
        self.direct_reader = direct_reader or read_direct

    def _load_with_fetch(self, url: str) -> tuple[np.ndarray, int]:
        blob, content_type = fetch_blob(self.session, url, self.cfg, accept="image/*")
        handle, path = self.registry.spool(blob, suffix=_EXT_BY_TYPE.get(content_type, ".img"))
        image = cv2.imread(path, cv2.IMREAD_COLOR)
        if image is None or image.size == 0:
            self.registry.release(handle)
            raise ValueError(f"Failed to decode image from: {url}")
        return image, handle

    def load(self, url: str, index: int = 0) -> LoadedAsset:
        try:
            image, handle = self._load_with_fetch(url)
            return LoadedAsset(index=index, url=url, image=image, handle=handle, strategy="fetch")
        except (requests.RequestException, OSError, ValueError, RuntimeError, cv2.error) as fetch_error:
            if self.cfg.verbose:
                print(f"⚠️ fetch failed for frame {index} ({fetch_error}), trying direct load")

        try:
            image = self.direct_reader(url)
        except (OSError, ValueError, RuntimeError, cv2.error) as exc:
            raise AssetLoadError(index, url, exc) from exc
        return LoadedAsset(index=index, url=url, image=image, handle=None, strategy="direct")

    def load_all(self, urls: Sequence[str], cancel: Optional[CancellationToken] = None) -> List[LoadedAsset]:
        assets: List[LoadedAsset] = []
        total = len(urls)
        for i, url in enumerate(urls):
            if cancel is not None and cancel.cancelled:
                raise GenerationCancelledError("assets_loading")
            if self.cfg.verbose:
                print(f"🖼️ Loading frame {i + 1}/{total}")
            assets.append(self.load(url, index=i))
        return assets
