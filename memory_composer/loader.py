from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from threading import Event
from typing import Iterable, List, Optional, Tuple
import io
import logging

import requests
from PIL import Image, ImageOps, UnidentifiedImageError

from . import config
from .cache import ImageCache
from .errors import ImageDecodeFailure, NoUsableImages, RenderCancelled
from .models import DecodedImage, ImageReference, LoadFailure, LoadReport
from .utils.validation import decode_data_url, image_extensions, validate_image_path, validate_url

LOGGER = logging.getLogger(__name__)

_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    ValueError,
    SyntaxError,  # raised by some Pillow plugins on malformed headers
    requests.RequestException,
)


class ResourceLoader:
    """Resolves image references into decoded bitmaps, one thread per image.

    A failed reference never aborts the batch: it is recorded in the
    returned :class:`LoadReport` and the remaining images are kept in input
    order.  The loader performs no retries.
    """

    VALID_EXTENSIONS = image_extensions() | {'.avif'}
    MAX_IMAGE_SIZE = config.MAX_IMAGE_DIMENSION
    POLL_INTERVAL = 0.05  # Seconds between cancellation checks while waiting

    def __init__(
        self,
        cache: Optional[ImageCache] = None,
        *,
        max_workers: int = config.LOADER_MAX_WORKERS,
        timeout: float = config.LOADER_TIMEOUT_SECS,
        session: Optional[requests.Session] = None,
        target_size: Optional[Tuple[int, int]] = None,
    ):
        """Initialize the loader.

        Args:
            cache: Optional caller-owned cache shared across renders
            max_workers: Upper bound on concurrent fetch/decode tasks
            timeout: Per-request timeout for HTTP references, in seconds
            session: ``requests`` session to fetch URLs with
            target_size: Hint for decoders to downscale large JPEGs early
        """
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self._cache = cache
        self._session = session
        self.max_workers = max_workers
        self.timeout = timeout
        self.target_size = target_size

    # ------------------------------------------------------------------
    # Single item
    # ------------------------------------------------------------------
    def fetch_bytes(self, reference: ImageReference) -> bytes:
        """Return the raw encoded bytes behind ``reference``."""
        kind = reference.kind
        if kind == "bytes":
            return bytes(reference.source)
        if kind == "data":
            _, payload = decode_data_url(str(reference.source))
            return payload
        if kind == "url":
            url = validate_url(str(reference.source))
            getter = self._session.get if self._session is not None else requests.get
            response = getter(url, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        path = validate_image_path(reference.source, self.VALID_EXTENSIONS)
        return path.read_bytes()

    def decode(self, data: bytes) -> Image.Image:
        """Decode ``data`` into an RGB or RGBA bitmap with orientation applied.

        Raises:
            ValueError: If the payload is empty or the image is too large
            UnidentifiedImageError: If Pillow cannot identify the format
        """
        if not data:
            raise ValueError("empty image payload")

        # Validate image data before the real decode
        with Image.open(io.BytesIO(data)) as candidate:
            candidate.verify()

        with Image.open(io.BytesIO(data)) as img:
            if max(img.size) > self.MAX_IMAGE_SIZE:
                raise ValueError(
                    f"image {img.width}x{img.height} exceeds {self.MAX_IMAGE_SIZE}px"
                )
            # Fast-path: ask the decoder to downscale first when a hint is set
            if self.target_size:
                img.draft("RGB", self.target_size)
            # Normalize orientation once
            img = ImageOps.exif_transpose(img)
            has_alpha = "A" in img.getbands() or "transparency" in img.info
            result = img.convert("RGBA" if has_alpha else "RGB")
            result.load()
            return result

    def load_one(self, reference: ImageReference, index: int = 0) -> DecodedImage:
        """Load a single reference, raising ``ImageDecodeFailure`` on any failure."""
        cache_key = reference.digest() if self._cache is not None else None
        if cache_key is not None:
            entry = self._cache.get(cache_key)
            if entry is not None:
                return DecodedImage(reference, entry.image, index)

        try:
            image = self.decode(self.fetch_bytes(reference))
        except _DECODE_ERRORS as e:
            raise ImageDecodeFailure(reference, f"{type(e).__name__}: {e}") from e

        if cache_key is not None:
            self._cache.put(cache_key, image)
        return DecodedImage(reference, image, index)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------
    def load(
        self,
        references: Iterable[ImageReference],
        cancel_event: Optional[Event] = None,
    ) -> LoadReport:
        """Load every reference concurrently and join before returning.

        Args:
            references: Ordered references to load
            cancel_event: Set by the caller to abandon the batch

        Returns:
            LoadReport: decoded images and failures, both in input order

        Raises:
            RenderCancelled: If ``cancel_event`` is set before the join completes
        """
        refs: List[ImageReference] = list(references)
        report = LoadReport()
        if not refs:
            return report
        _raise_if_cancelled(cancel_event)

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(refs)),
            thread_name_prefix="memory-composer-load",
        )
        cancelled = False
        try:
            futures: List[Future] = [
                executor.submit(self.load_one, ref, index) for index, ref in enumerate(refs)
            ]
            pending = set(futures)
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    raise RenderCancelled("render cancelled while loading images")
                _, pending = wait(pending, timeout=self.POLL_INTERVAL, return_when=FIRST_COMPLETED)
        finally:
            executor.shutdown(wait=not cancelled, cancel_futures=True)

        for index, (ref, future) in enumerate(zip(refs, futures)):
            try:
                report.succeeded.append(future.result())
            except ImageDecodeFailure as e:
                LOGGER.warning("Skipping image %d (%s): %s", index, ref, e.reason)
                report.failed.append(LoadFailure(index, ref, e))
            except Exception as e:
                LOGGER.error("Unexpected error loading image %d (%s): %s", index, ref, e)
                failure = ImageDecodeFailure(ref, f"{type(e).__name__}: {e}")
                report.failed.append(LoadFailure(index, ref, failure))

        LOGGER.info(
            "Loaded %d of %d images (%d failed)",
            report.succeeded_count, report.attempted, report.failed_count,
        )
        return report

    def load_or_raise(
        self,
        references: Iterable[ImageReference],
        cancel_event: Optional[Event] = None,
    ) -> LoadReport:
        """Like :meth:`load` but raise ``NoUsableImages`` when nothing decoded."""
        report = self.load(references, cancel_event)
        if report.succeeded_count == 0:
            LOGGER.error("No usable images among %d references", report.attempted)
            raise NoUsableImages(report.attempted, report)
        return report


def _raise_if_cancelled(cancel_event: Optional[Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RenderCancelled("render cancelled")


__all__ = ["ResourceLoader"]
