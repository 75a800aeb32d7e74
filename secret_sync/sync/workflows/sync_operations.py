"""Workflow for pulling and pushing declared secret files.

Each entry is processed in isolation and always yields exactly one
SyncOutcome. Entry-scoped failures (missing files, bad content, missing or
unreachable secrets) become ``failed`` outcomes; an authentication failure
stops the run and marks entries that have not started as ``skipped``.

Push follows this state machine per entry::

    checking-existence -> creating -> done
    checking-existence -> creating -> conflict -> updating -> done
    checking-existence -> fetching -> (unchanged | updating) -> done

Losing the creation race to another writer is expected: the conflict is
resolved by a single update attempt rather than by locking.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional, Sequence

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..domains.codecs import SecretValue
from ..domains.errors import (
    CodecError,
    LocalFileError,
    ProviderAuthError,
    ProviderConflict,
    ProviderError,
    ProviderNotFound,
    ProviderTransportError,
)
from ..domains.local_files import read_file, read_file_if_exists, write_file_atomic
from ..domains.models import FileEntry, SyncOutcome, SyncReport, SyncStatus
from ..domains.provider import SecretProvider

logger = logging.getLogger(__name__)

PULL = "pull"
PUSH = "push"

# Transport failures are retried twice before the entry is marked failed
RETRY_ATTEMPTS = 3
RETRY_WAIT = wait_exponential(multiplier=0.5, min=0.5, max=4)

REMOTE_ABSENT = "remote secret absent"
CREATE_RACE_UNRESOLVED = "create race unresolved"
AUTH_ABORTED = "aborted: authentication failed"
CANCELLED = "cancelled"


def _call_provider(func: Callable[..., Any], *args: Any) -> Any:
    retryer = Retrying(
        retry=retry_if_exception_type(ProviderTransportError),
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=RETRY_WAIT,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retryer(func, *args)


def _failed(entry: FileEntry, reason: str) -> SyncOutcome:
    logger.warning(f"{entry.key}: {reason}")
    return SyncOutcome.for_entry(entry, SyncStatus.FAILED, reason)


def pull_entry(provider: SecretProvider, entry: FileEntry, dry_run: bool = False) -> SyncOutcome:
    """
    Bring one local file in line with its remote secret.

    Args:
        provider: Remote secret store
        entry: Entry to pull
        dry_run: If True, report what would change without writing

    Returns:
        The entry's outcome

    Raises:
        ProviderAuthError: Authentication failures are fatal for the run
    """
    try:
        value = _call_provider(provider.fetch, entry.secret_name)
    except ProviderNotFound:
        return _failed(entry, REMOTE_ABSENT)
    except ProviderAuthError:
        raise
    except ProviderError as e:
        return _failed(entry, str(e))

    try:
        data = entry.codec.encode(value)
        current = read_file_if_exists(entry.path)
    except (CodecError, LocalFileError) as e:
        return _failed(entry, str(e))

    if current == data:
        logger.info(f"{entry.key}: {entry.path} is up to date")
        return SyncOutcome.for_entry(entry, SyncStatus.UNCHANGED)

    status = SyncStatus.CREATED if current is None else SyncStatus.UPDATED

    if dry_run:
        logger.info(f"{entry.key}: would write {entry.path} (dry run)")
    else:
        try:
            write_file_atomic(entry.path, data)
        except LocalFileError as e:
            return _failed(entry, str(e))
        logger.info(f"{entry.key}: wrote {entry.path}")

    return SyncOutcome.for_entry(entry, status)


def push_entry(provider: SecretProvider, entry: FileEntry, dry_run: bool = False) -> SyncOutcome:
    """
    Bring one remote secret in line with its local file.

    Metadata is only sent when the secret is created, never on update.

    Args:
        provider: Remote secret store
        entry: Entry to push
        dry_run: If True, report what would change without calling create/update

    Returns:
        The entry's outcome

    Raises:
        ProviderAuthError: Authentication failures are fatal for the run
    """
    try:
        value = entry.codec.decode(read_file(entry.path))
    except (CodecError, LocalFileError) as e:
        return _failed(entry, str(e))

    try:
        if not _call_provider(provider.exists, entry.secret_name):
            return _create_secret(provider, entry, value, dry_run)
        return _update_secret(provider, entry, value, dry_run)
    except ProviderAuthError:
        raise
    except ProviderError as e:
        return _failed(entry, str(e))


def _create_secret(provider: SecretProvider, entry: FileEntry, value: SecretValue, dry_run: bool) -> SyncOutcome:
    if dry_run:
        logger.info(f"{entry.key}: would create secret {entry.secret_name} (dry run)")
        return SyncOutcome.for_entry(entry, SyncStatus.CREATED)

    metadata = None if entry.metadata.is_empty() else entry.metadata
    try:
        _call_provider(provider.create, entry.secret_name, value, metadata)
        logger.info(f"{entry.key}: created secret {entry.secret_name}")
        return SyncOutcome.for_entry(entry, SyncStatus.CREATED)
    except ProviderConflict:
        logger.info(f"{entry.key}: secret {entry.secret_name} was created concurrently, updating instead")

    try:
        _call_provider(provider.update, entry.secret_name, value)
    except ProviderAuthError:
        raise
    except ProviderError as e:
        return _failed(entry, f"{CREATE_RACE_UNRESOLVED}: {e}")

    logger.info(f"{entry.key}: updated secret {entry.secret_name}")
    return SyncOutcome.for_entry(entry, SyncStatus.UPDATED)


def _update_secret(provider: SecretProvider, entry: FileEntry, value: SecretValue, dry_run: bool) -> SyncOutcome:
    try:
        remote = _call_provider(provider.fetch, entry.secret_name)
    except ProviderNotFound:
        # Secret exists but has no readable version yet
        remote = None

    if remote == value:
        logger.info(f"{entry.key}: secret {entry.secret_name} is up to date")
        return SyncOutcome.for_entry(entry, SyncStatus.UNCHANGED)

    if dry_run:
        logger.info(f"{entry.key}: would update secret {entry.secret_name} (dry run)")
    else:
        _call_provider(provider.update, entry.secret_name, value)
        logger.info(f"{entry.key}: updated secret {entry.secret_name}")

    return SyncOutcome.for_entry(entry, SyncStatus.UPDATED)


_HANDLERS: Dict[str, Callable[..., SyncOutcome]] = {
    PULL: pull_entry,
    PUSH: push_entry,
}


def sync_entries(
    operation: str,
    provider: SecretProvider,
    entries: Sequence[FileEntry],
    dry_run: bool = False,
    max_workers: int = 1,
    cancel_event: Optional[threading.Event] = None,
) -> SyncReport:
    """
    Pull or push every entry and collect the outcomes.

    Args:
        operation: "pull" or "push"
        provider: Remote secret store
        entries: Entries to process, in manifest order
        dry_run: If True, no local file or remote secret is modified
        max_workers: Entries processed at once; also bounds in-flight provider calls
        cancel_event: When set, entries that have not started are skipped

    Returns:
        SyncReport with one outcome per entry, in the order given

    Behavior:
        - A failure in one entry never stops the others
        - ProviderAuthError fails the current entry and skips the rest
    """
    if operation not in _HANDLERS:
        raise ValueError(f"Unknown operation: {operation}")
    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")

    handler = _HANDLERS[operation]
    cancel_event = cancel_event or threading.Event()
    abort_reasons: List[str] = []

    def run(entry: FileEntry) -> SyncOutcome:
        if cancel_event.is_set():
            reason = abort_reasons[0] if abort_reasons else CANCELLED
            return SyncOutcome.for_entry(entry, SyncStatus.SKIPPED, reason)
        try:
            return handler(provider, entry, dry_run=dry_run)
        except ProviderAuthError as e:
            abort_reasons.append(AUTH_ABORTED)
            cancel_event.set()
            return _failed(entry, str(e))
        except Exception as e:
            logger.exception(f"{entry.key}: unexpected error")
            return _failed(entry, f"unexpected error: {e}")

    logger.debug(f"Starting {operation} of {len(entries)} entries (dry_run={dry_run}, workers={max_workers})")

    if max_workers == 1 or len(entries) <= 1:
        outcomes = []
        for entry in entries:
            try:
                outcomes.append(run(entry))
            except KeyboardInterrupt:
                cancel_event.set()
                raise
    else:
        results: List[Optional[SyncOutcome]] = [None] * len(entries)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(run, entry): index for index, entry in enumerate(entries)}
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except KeyboardInterrupt:
                cancel_event.set()
                raise
        outcomes = [outcome for outcome in results if outcome is not None]

    return SyncReport(operation=operation, dry_run=dry_run, outcomes=outcomes)
