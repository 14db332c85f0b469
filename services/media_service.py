"""
Media resolution pipeline.

Finds image references in catalog records, fetches each through an
ordered strategy chain, uploads the bytes to object storage and
reports the stored URL per record.

Strategy chain per task, first success wins:
    content API lookup (URL substitution only) -> direct fetch
    -> each relay once, in order -> placeholder

Tasks run in a small thread pool. The caller gets the task list after
every completion.
"""

import mimetypes
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from functools import partial
from typing import Callable, Iterable, Optional
from urllib.parse import quote, urlsplit

import requests
import structlog

from exceptions import MediaFetchError, MediaUploadError, ValidationError
from integrations.content_api import WordPressMediaClient
from integrations.supabase_store import ObjectStorage
from models.catalog import CatalogRecord, TargetField
from models.import_run import ImportConfig
from models.media import (
    FetchedImage,
    ImageFailure,
    ImageTask,
    ImageTaskStatus,
    MediaSummary,
)
from utils.text_utils import IMAGE_URL_PATTERN, url_basename

logger = structlog.get_logger(__name__)

IMAGE_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg",
    ".bmp", ".tiff", ".tif", ".avif", ".ico",
)
IMAGE_KEYWORDS = ("image", "img", "photo", "media", "upload", "content")
# Public pass-through relays; URLs on these hosts are never relayed again
KNOWN_RELAY_HOSTS = (
    "corsproxy.io", "allorigins.win", "cors-anywhere.herokuapp.com",
    "thingproxy.freeboard.io", "proxy.cors.sh",
)

STORAGE_ENTITY_KIND = "equipment"
STORAGE_PURPOSE = "image"
DEFAULT_CONTENT_TYPE = "image/jpeg"

FetchStrategy = Callable[[str], FetchedImage]
TaskListCallback = Callable[[list[ImageTask]], None]


# ===================
# EXTRACTION
# ===================

def extract_image_urls(text: Optional[str]) -> list[str]:
    """
    Candidate URLs in an image cell.

    A cell containing "|" yields only its first non-empty entry.
    Otherwise every http(s) URL in the text is returned.
    """
    if not text:
        return []

    if "|" in text:
        urls = [part.strip() for part in text.split("|") if part.strip()]
        return urls[:1]

    return IMAGE_URL_PATTERN.findall(text)


def is_image_url(url: str) -> bool:
    """Loose check: image extension, or an image-ish keyword anywhere in the URL."""
    lowered = url.lower()
    for ext in IMAGE_EXTENSIONS:
        if lowered.endswith(ext) or f"{ext}?" in lowered or f"{ext}&" in lowered:
            return True
    return any(keyword in lowered for keyword in IMAGE_KEYWORDS)


def extract_image_tasks(records: Iterable[CatalogRecord]) -> list[ImageTask]:
    """One PENDING task per image-like URL, keyed by record id."""
    tasks: list[ImageTask] = []
    for record in records:
        for url in extract_image_urls(record.get(TargetField.IMAGE)):
            if is_image_url(url):
                tasks.append(ImageTask(record_id=record.record_id, source_url=url))
            else:
                logger.debug("image_url_rejected", record_id=record.record_id, url=url)

    logger.info("image_tasks_extracted", tasks=len(tasks))
    return tasks


# ===================
# FETCH STRATEGIES
# ===================

def _content_type(response: requests.Response, url: str) -> str:
    header = response.headers.get("Content-Type", "")
    content_type = header.split(";")[0].strip().lower()
    if content_type:
        return content_type
    guessed, _ = mimetypes.guess_type(urlsplit(url).path)
    return guessed or DEFAULT_CONTENT_TYPE


def fetch_direct(
    url: str,
    session: requests.Session,
    timeout: float,
    strategy: str = "direct",
    source_url: Optional[str] = None,
) -> FetchedImage:
    """
    GET url and return its bytes.

    Raises:
        MediaFetchError: On network error, non-2xx status, empty body,
                         or a non-image content type
    """
    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise MediaFetchError(url, str(e), strategy)

    if not response.content:
        raise MediaFetchError(url, "Empty response body", strategy)

    content_type = _content_type(response, url)
    if not (content_type.startswith("image/") or content_type == "application/octet-stream"):
        raise MediaFetchError(url, f"Not an image ({content_type})", strategy)

    return FetchedImage(
        content=response.content,
        content_type=content_type,
        source_url=source_url or url,
        strategy=strategy,
    )


def is_relayed_url(url: str, relays: Iterable[str] = ()) -> bool:
    """True if url already points at a configured or well-known relay."""
    host = urlsplit(url).netloc.lower()
    if not host:
        return False
    relay_hosts = [urlsplit(r).netloc.lower() for r in relays] + list(KNOWN_RELAY_HOSTS)
    return any(h and (host == h or host.endswith("." + h)) for h in relay_hosts)


def fetch_via_relay(
    url: str,
    relay: str,
    session: requests.Session,
    timeout: float,
) -> FetchedImage:
    """Fetch url through a pass-through relay (relay prefix + encoded URL)."""
    relay_url = f"{relay}{quote(url, safe='')}"
    strategy = f"relay:{urlsplit(relay).netloc or relay}"
    return fetch_direct(relay_url, session, timeout, strategy=strategy, source_url=url)


def fetch_placeholder(
    url: str,
    record_id: str,
    template: str,
    session: requests.Session,
    timeout: float,
) -> FetchedImage:
    """Fetch the deterministic placeholder for record_id; url is ignored."""
    placeholder_url = template.format(record_id=record_id)
    return fetch_direct(placeholder_url, session, timeout, strategy="placeholder")


def run_strategies(
    url: str,
    strategies: list[tuple[str, FetchStrategy]],
    attempts: Optional[list[str]] = None,
) -> FetchedImage:
    """
    Try strategies in order and return the first result.

    Args:
        url: URL handed to every strategy
        strategies: (name, callable) pairs
        attempts: Receives "name: reason" for each failed strategy

    Raises:
        MediaFetchError: If every strategy fails
    """
    failures = attempts if attempts is not None else []
    for name, strategy in strategies:
        try:
            return strategy(url)
        except MediaFetchError as e:
            failures.append(f"{name}: {e.reason}")
            logger.debug("fetch_strategy_failed", url=url, strategy=name, reason=e.reason)

    raise MediaFetchError(url, "All fetch strategies failed", strategy="chain")


# ===================
# PIPELINE
# ===================

class MediaPipeline:
    """
    Resolves image tasks for one session.

    Each task is touched only by the worker running it; callbacks run
    on the calling thread.
    """

    def __init__(
        self,
        config: Optional[ImportConfig] = None,
        storage: Optional[ObjectStorage] = None,
        content_api: Optional[WordPressMediaClient] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or ImportConfig()
        self.storage = storage or ObjectStorage()
        self.session = session or requests.Session()
        self.content_api = content_api
        if self.content_api is None and self.config.use_content_api:
            self.content_api = WordPressMediaClient(session=self.session)

    def strategies_for(
        self,
        task: ImageTask,
        fetch_url: Optional[str] = None,
    ) -> list[tuple[str, FetchStrategy]]:
        """
        Ordered fetch strategies for one task.

        Relays are left out when the URL is on the content API site or
        already goes through a relay.
        """
        url = fetch_url or task.source_url
        timeout = self.config.media_fetch_timeout_seconds
        strategies: list[tuple[str, FetchStrategy]] = [
            ("direct", partial(fetch_direct, session=self.session, timeout=timeout)),
        ]

        if self.config.use_relays and self._relay_allowed(url):
            for relay in self.config.relays:
                strategies.append((
                    f"relay:{relay}",
                    partial(fetch_via_relay, relay=relay, session=self.session, timeout=timeout),
                ))

        if self.config.use_placeholder:
            strategies.append((
                "placeholder",
                partial(
                    fetch_placeholder,
                    record_id=task.record_id,
                    template=self.config.placeholder_template,
                    session=self.session,
                    timeout=timeout,
                ),
            ))

        return strategies

    def _relay_allowed(self, url: str) -> bool:
        if self.content_api is not None and self.content_api.is_first_party(url):
            return False
        return not is_relayed_url(url, self.config.relays)

    def _substitute_url(self, url: str) -> str:
        if self.content_api is None:
            return url
        return self.content_api.resolve_asset_url(url)

    # ===================
    # SINGLE TASK
    # ===================

    def fetch(self, task: ImageTask) -> ImageTask:
        """Run the strategy chain; leaves the task RESOLVING with a payload, or FAILED."""
        task.status = ImageTaskStatus.RESOLVING
        task.attempts = []
        fetch_url = self._substitute_url(task.source_url)

        try:
            payload = run_strategies(fetch_url, self.strategies_for(task, fetch_url), task.attempts)
        except MediaFetchError as e:
            task.status = ImageTaskStatus.FAILED
            task.failure = ImageFailure.FETCH_FAILED
            task.failure_reason = "; ".join(task.attempts) or e.reason
            task.message = "Image could not be fetched; upload it manually"
            logger.warning(
                "image_fetch_failed",
                record_id=task.record_id,
                url=task.source_url,
                attempts=len(task.attempts)
            )
            return task

        task.payload = payload
        if payload.strategy == "placeholder":
            task.message = "Placeholder image used (original could not be fetched)"
        logger.debug(
            "image_fetched",
            record_id=task.record_id,
            strategy=payload.strategy,
            size_bytes=len(payload.content)
        )
        return task

    def upload(self, task: ImageTask) -> ImageTask:
        """Upload the task's payload; RESOLVED with stored_url, or FAILED upload-failed."""
        if task.payload is None:
            raise ValidationError(
                message="Image task has nothing to upload",
                details={"record_id": task.record_id, "url": task.source_url}
            )

        original_name = url_basename(task.payload.source_url) or None
        path = self.storage.build_path(
            STORAGE_ENTITY_KIND,
            task.record_id,
            STORAGE_PURPOSE,
            original_name=original_name,
        )

        try:
            stored_url = self.storage.put(path, task.payload.content, task.payload.content_type)
        except MediaUploadError as e:
            task.status = ImageTaskStatus.FAILED
            task.failure = ImageFailure.UPLOAD_FAILED
            task.failure_reason = e.reason
            task.message = "Image fetched but upload failed; retry the upload"
            logger.warning("image_upload_failed", record_id=task.record_id, path=path, error=e.reason)
            return task

        task.status = ImageTaskStatus.RESOLVED
        task.failure = None
        task.failure_reason = None
        task.stored_url = stored_url
        if not task.message:
            task.message = "Image processed successfully"
        logger.info("image_resolved", record_id=task.record_id, strategy=task.payload.strategy)
        return task

    def resolve_task(self, task: ImageTask) -> ImageTask:
        """Fetch then upload one task."""
        self.fetch(task)
        if task.status == ImageTaskStatus.FAILED:
            return task
        return self.upload(task)

    def _run(self, task: ImageTask, cancel_event: Optional[threading.Event]) -> ImageTask:
        if cancel_event is not None and cancel_event.is_set():
            task.status = ImageTaskStatus.FAILED
            task.failure = ImageFailure.ABORTED
            task.failure_reason = "Aborted before fetch"
            return task
        return self.resolve_task(task)

    # ===================
    # BATCH
    # ===================

    def resolve(
        self,
        tasks: list[ImageTask],
        on_update: Optional[TaskListCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[ImageTask]:
        """
        Resolve every task not already RESOLVED.

        Args:
            tasks: Tasks to resolve (updated in place)
            on_update: Called with the full task list after each completion
            cancel_event: Tasks not yet started when set end FAILED/aborted

        Returns:
            The same task list
        """
        pending = [t for t in tasks if t.status != ImageTaskStatus.RESOLVED]
        logger.info(
            "media_resolution_started",
            tasks=len(pending),
            concurrency=self.config.media_concurrency
        )

        if pending:
            with ThreadPoolExecutor(max_workers=self.config.media_concurrency) as pool:
                futures = {pool.submit(self._run, task, cancel_event): task for task in pending}
                for future in as_completed(futures):
                    future.result()
                    if on_update is not None:
                        on_update(list(tasks))

        summary = self.summary(tasks)
        logger.info(
            "media_resolution_finished",
            total=summary.total_images,
            success=summary.success_count,
            errors=summary.error_count
        )
        return tasks

    # ===================
    # MANUAL CORRECTIONS
    # ===================

    def retry_upload(self, task: ImageTask) -> ImageTask:
        """Upload again a task whose fetch succeeded but upload failed."""
        if task.failure != ImageFailure.UPLOAD_FAILED or task.payload is None:
            raise ValidationError(
                message="Only tasks that failed during upload can be retried",
                details={"record_id": task.record_id, "failure": task.failure.value if task.failure else None}
            )
        return self.upload(task)

    def apply_manual_upload(
        self,
        task: ImageTask,
        content: bytes,
        content_type: str,
        filename: Optional[str] = None,
    ) -> ImageTask:
        """Use a local file as the task's payload and upload it, skipping the network."""
        if not content:
            raise ValidationError(message="Uploaded image is empty", details={"record_id": task.record_id})

        task.payload = FetchedImage(
            content=content,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            source_url=filename or task.source_url,
            strategy="manual",
        )
        task.message = "Image uploaded manually"
        logger.info("manual_image_attached", record_id=task.record_id, size_bytes=len(content))
        return self.upload(task)

    @staticmethod
    def add_manual_url(tasks: list[ImageTask], record_id: str, url: str) -> ImageTask:
        """Append a PENDING task for an operator-supplied URL."""
        url = url.strip()
        if not url.lower().startswith(("http://", "https://")):
            raise ValidationError(message="Image URL must start with http:// or https://", details={"url": url})

        task = ImageTask(record_id=record_id, source_url=url)
        tasks.append(task)
        logger.info("manual_image_url_added", record_id=record_id, url=url)
        return task

    # ===================
    # RESULTS
    # ===================

    @staticmethod
    def image_map(tasks: Iterable[ImageTask]) -> dict[str, str]:
        """record_id -> stored URL of the first resolved task of that record."""
        result: dict[str, str] = {}
        for task in tasks:
            if task.is_resolved and task.record_id not in result:
                result[task.record_id] = task.stored_url
        return result

    @classmethod
    def summary(cls, tasks: list[ImageTask]) -> MediaSummary:
        success = sum(1 for t in tasks if t.is_resolved)
        errors = sum(1 for t in tasks if t.status == ImageTaskStatus.FAILED)
        return MediaSummary(
            total_images=len(tasks),
            success_count=success,
            error_count=errors,
            image_map=cls.image_map(tasks),
        )
