"""
Asynchronous, best-effort image loading for the canvas renderer.

Each source is fetched at most once on a small thread pool. A render pass
never blocks on a load: it asks for the image, gets None while the load is
pending (or after it failed) and draws the placement without it.

Local sources must stay inside the assets directory, and remote sources can
be limited to a list of allowed hosts. Loaded images and remembered failures
are kept in bounded least-recently-used caches.
"""

import base64
import io
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Sequence
from urllib.parse import urlparse

import httpx
from PIL import Image
from loguru import logger

from .errors import ImageSourceError


class ImageLoader:
    """Cache of loaded images keyed by source string."""

    def __init__(self,
                 assets_root: Path,
                 max_workers: int = 4,
                 timeout: float = 10.0,
                 on_ready: Optional[Callable[[str], None]] = None,
                 max_cached: int = 128,
                 allowed_hosts: Optional[Sequence[str]] = None):
        self.assets_root = Path(assets_root)
        self.timeout = timeout
        self.on_ready = on_ready
        self.max_cached = max(1, max_cached)
        # Empty means any host
        self.allowed_hosts = frozenset(h.lower() for h in allowed_hosts or ())

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='image-loader')
        self._lock = threading.Lock()
        self._images: 'OrderedDict[str, Image.Image]' = OrderedDict()
        self._pending: Dict[str, Future] = {}
        self._failed: 'OrderedDict[str, None]' = OrderedDict()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get(self, src: Optional[str]) -> Optional[Image.Image]:
        """Return a loaded image without scheduling anything."""
        if not src:
            return None
        with self._lock:
            return self._touch(src)

    def request(self, src: Optional[str]) -> Optional[Image.Image]:
        """Return the image if loaded, otherwise start loading it and return None."""
        if not src:
            return None

        with self._lock:
            image = self._touch(src)
            if image is not None:
                return image
            if self._disposed or src in self._failed or src in self._pending:
                return None
            future = self._executor.submit(self._fetch, src)
            self._pending[src] = future

        future.add_done_callback(lambda f, s=src: self._finish(s, f))
        return None

    def is_failed(self, src: str) -> bool:
        with self._lock:
            return src in self._failed

    def is_pending(self, src: str) -> bool:
        with self._lock:
            return src in self._pending

    def cached_count(self) -> int:
        with self._lock:
            return len(self._images)

    def wait(self, sources: Iterable[Optional[str]], timeout: Optional[float] = None) -> None:
        """Request every source and block until each has loaded, failed or timed out."""
        futures: Dict[Future, str] = {}
        for src in sources:
            self.request(src)
            with self._lock:
                future = self._pending.get(src) if src else None
            if future is not None:
                futures[future] = src

        if not futures:
            return

        done, not_done = wait(list(futures), timeout=timeout if timeout is not None else self.timeout)
        if not_done:
            logger.warning(f"{len(not_done)} image load(s) still pending after wait")
        # Done callbacks may not have run yet on the worker threads
        for future in done:
            self._finish(futures[future], future)

    def dispose(self) -> None:
        """Abandon pending loads; results that arrive later are discarded."""
        with self._lock:
            self._disposed = True
            pending = list(self._pending.values())
            self._pending.clear()
        for future in pending:
            future.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug(f"Image loader disposed, {len(pending)} pending load(s) abandoned")

    def _touch(self, src: str) -> Optional[Image.Image]:
        # Caller holds the lock
        image = self._images.get(src)
        if image is not None:
            self._images.move_to_end(src)
        return image

    def _remember(self, cache: OrderedDict, src: str, value) -> None:
        # Caller holds the lock
        cache[src] = value
        cache.move_to_end(src)
        while len(cache) > self.max_cached:
            evicted, _ = cache.popitem(last=False)
            logger.debug(f"Evicted from image cache: {evicted[:80]}")

    def _finish(self, src: str, future: Future) -> None:
        with self._lock:
            if self._pending.get(src) is future:
                del self._pending[src]
            if self._disposed or future.cancelled():
                return
            if src in self._images or src in self._failed:
                # already recorded by wait() or the done callback
                return
            error = future.exception()
            if error is not None:
                self._remember(self._failed, src, None)
                logger.debug(f"Image load failed for {src[:80]}: {error}")
                return
            self._remember(self._images, src, future.result())
            callback = self.on_ready

        logger.debug(f"Image loaded: {src[:80]}")
        if callback is not None:
            try:
                callback(src)
            except Exception as e:
                logger.error(f"Image ready callback failed for {src[:80]}: {e}")

    def resolve_local_path(self, src: str) -> Path:
        """Map a relative source onto the assets directory, refusing anything outside it."""
        root = self.assets_root.resolve()
        path = (root / src.lstrip('/')).resolve()
        try:
            path.relative_to(root)
        except ValueError:
            raise ImageSourceError("Image path escapes the assets directory", src)
        return path

    def check_remote_host(self, src: str) -> None:
        host = (urlparse(src).hostname or '').lower()
        if self.allowed_hosts and host not in self.allowed_hosts:
            raise ImageSourceError(f"Image host not allowed: {host or '?'}", src)

    def _fetch(self, src: str) -> Image.Image:
        if src.startswith('data:'):
            _, _, payload = src.partition(',')
            data = base64.b64decode(payload)
        elif src.startswith(('http://', 'https://')):
            self.check_remote_host(src)
            # No redirects when hosts are restricted
            response = httpx.get(src, timeout=self.timeout, follow_redirects=not self.allowed_hosts)
            response.raise_for_status()
            data = response.content
        else:
            data = self.resolve_local_path(src).read_bytes()

        image = Image.open(io.BytesIO(data))
        image.load()
        return image.convert('RGBA')
