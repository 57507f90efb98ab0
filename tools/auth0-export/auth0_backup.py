#!/usr/bin/env python3
"""
auth0-backup: Back up an Auth0 tenant's configuration to JSON snapshot files.

Writes one snapshot per resource type plus a summary file. A failure in one
resource type is recorded in the summary and does not stop the others.

Usage:
    python3 auth0_backup.py --domain tenant.eu.auth0.com --token TOKEN --output-dir ./backup
    python3 auth0_backup.py --resources applications,connections --output-dir ./backup
    AUTH0_DOMAIN=tenant.eu.auth0.com AUTH0_TOKEN=TOKEN python3 auth0_backup.py
"""

import argparse
import enum
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from auth0_client import Auth0Client
from backup_utils import (
    DEFAULT_PAGE_SIZE,
    RESOURCE_FETCHERS,
    TOOL_VERSION,
    create_backup_metadata,
    describe_api_error,
    generate_backup_filename,
    generate_summary_filename,
    generate_timestamp,
    isoformat_utc,
    timestamp_to_iso,
    validate_output_directory,
    write_json_file,
)

logger = logging.getLogger(__name__)

SUPPORTED_RESOURCE_TYPES = (
    "applications",
    "connections",
    "actions",
    "resource_servers",
    "forms",
)

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_PARTIAL = "partial"


class BackupValidationError(ValueError):
    """Raised before any I/O when the backup request itself is invalid."""


class BackupPhase(enum.Enum):
    NOT_STARTED = "not_started"
    VALIDATING = "validating"
    FETCHING = "fetching"
    SUMMARIZING = "summarizing"
    DONE = "done"


@dataclass(frozen=True)
class ResourceBackupStatus:
    """Outcome of backing up one resource type."""
    count: int
    file_name: str
    status: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "count": self.count,
            "fileName": self.file_name,
            "status": self.status,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class BackupSummary:
    """Aggregated result of one backup run."""
    timestamp: str
    tenant_domain: str
    tool_version: str
    start_time: datetime
    end_time: datetime
    resources: Dict[str, ResourceBackupStatus] = field(default_factory=dict)
    files: List[str] = field(default_factory=list)
    output_directory: str = ""
    summary_error: Optional[str] = None

    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    @property
    def attempted(self) -> int:
        return len(self.resources)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.resources.values() if r.status == STATUS_SUCCESS)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.resources.values() if r.status == STATUS_FAILED)

    @property
    def total_resources_backed(self) -> int:
        return sum(r.count for r in self.resources.values() if r.status == STATUS_SUCCESS)

    @property
    def status(self) -> str:
        if self.failed == 0:
            return STATUS_SUCCESS
        if self.failed < self.attempted:
            return STATUS_PARTIAL
        return STATUS_FAILED

    @property
    def message(self) -> str:
        if self.status == STATUS_SUCCESS:
            return (f"Backup completed successfully. Backed up {self.total_resources_backed} "
                    f"resources across {self.succeeded} resource types in {self.duration_ms}ms.")
        if self.status == STATUS_PARTIAL:
            return (f"Backup partially completed. {self.succeeded} resource types succeeded, "
                    f"{self.failed} failed. Backed up {self.total_resources_backed} resources "
                    f"in {self.duration_ms}ms.")
        return "Backup failed. No resources were backed up."

    def metadata(self) -> Dict[str, Any]:
        return {
            "backupTimestamp": timestamp_to_iso(self.timestamp),
            "backupStartTime": isoformat_utc(self.start_time),
            "backupEndTime": isoformat_utc(self.end_time),
            "durationMs": self.duration_ms,
            "tenantDomain": self.tenant_domain,
            "toolVersion": self.tool_version,
            "totalResourcesBacked": self.total_resources_backed,
            "resourceTypesAttempted": self.attempted,
            "resourceTypesSucceeded": self.succeeded,
            "resourceTypesFailed": self.failed,
        }

    def to_dict(self) -> Dict[str, Any]:
        """The summary file contents."""
        return {
            "metadata": self.metadata(),
            "resources": {name: status.to_dict() for name, status in self.resources.items()},
            "files": list(self.files),
        }


def _log_phase(phase: BackupPhase) -> None:
    logger.debug(f"Backup phase: {phase.value}")


def _normalize_resource_types(resource_types: Optional[Sequence[str]]) -> List[str]:
    if resource_types is None:
        return list(SUPPORTED_RESOURCE_TYPES)
    seen: List[str] = []
    for r in resource_types:
        if r not in seen:
            seen.append(r)
    return seen


def validate_backup_request(token: str, domain: str, output_dir: str,
                            resource_types: Sequence[str]) -> None:
    """Raise BackupValidationError naming the first invalid input."""
    if not token:
        raise BackupValidationError("Missing authorization token")
    if not domain:
        raise BackupValidationError("Auth0 domain is not configured")

    validation = validate_output_directory(output_dir)
    if not validation.valid:
        raise BackupValidationError(validation.error)

    if not resource_types:
        raise BackupValidationError("No resource types requested")
    invalid = [r for r in resource_types if r not in SUPPORTED_RESOURCE_TYPES]
    if invalid:
        raise BackupValidationError(
            f"Invalid resource types: {', '.join(invalid)}. "
            f"Supported types: {', '.join(SUPPORTED_RESOURCE_TYPES)}"
        )


def backup_resource_type(client: Auth0Client, resource_type: str, output_dir: str,
                         timestamp: str, domain: str, tool_version: str = TOOL_VERSION,
                         page_size: int = DEFAULT_PAGE_SIZE) -> ResourceBackupStatus:
    """Fetch and write one resource type. Never raises; failures become a failed status."""
    filename = generate_backup_filename(resource_type, timestamp)
    fetcher = RESOURCE_FETCHERS[resource_type]
    try:
        logger.info(f"Backing up {resource_type}...")
        records = fetcher(client, page_size)
        snapshot = {
            "metadata": create_backup_metadata(timestamp, domain, resource_type,
                                               len(records), tool_version),
            "data": records,
        }
        write_json_file(output_dir, filename, snapshot)
    except Exception as e:
        error = describe_api_error(e)
        logger.warning(f"Failed to back up {resource_type}: {error}", exc_info=True)
        return ResourceBackupStatus(count=0, file_name=filename, status=STATUS_FAILED, error=error)

    logger.info(f"Successfully backed up {len(records)} {resource_type}")
    return ResourceBackupStatus(count=len(records), file_name=filename, status=STATUS_SUCCESS)


def backup_tenant(token: str, domain: str, output_dir: str,
                  resource_types: Optional[Sequence[str]] = None,
                  client: Optional[Auth0Client] = None,
                  tool_version: str = TOOL_VERSION,
                  clock: Optional[Callable[[], datetime]] = None,
                  page_size: int = DEFAULT_PAGE_SIZE,
                  progress: Optional[Callable[[str, ResourceBackupStatus], None]] = None,
                  ) -> BackupSummary:
    """Back up the requested resource types of a tenant into ``output_dir``.

    Validation problems raise BackupValidationError before anything is fetched
    or written. After validation the call always returns a BackupSummary; per
    type failures are reported in ``summary.resources``.
    """
    _log_phase(BackupPhase.NOT_STARTED)
    clock = clock or (lambda: datetime.now(timezone.utc))
    _log_phase(BackupPhase.VALIDATING)

    types = _normalize_resource_types(resource_types)
    validate_backup_request(token, domain, output_dir, types)

    if client is None:
        client = Auth0Client(domain, token)

    start_time = clock()
    timestamp = generate_timestamp(start_time)
    resources: Dict[str, ResourceBackupStatus] = {}
    files: List[str] = []

    logger.info(f"Starting backup to directory: {output_dir}")
    logger.info(f"Backup timestamp: {timestamp}")
    logger.info(f"Resources to backup: {', '.join(types)}")

    _log_phase(BackupPhase.FETCHING)
    for resource_type in types:
        status = backup_resource_type(client, resource_type, output_dir, timestamp, domain,
                                      tool_version, page_size)
        resources[resource_type] = status
        files.append(status.file_name)
        if progress:
            progress(resource_type, status)

    _log_phase(BackupPhase.SUMMARIZING)
    summary_filename = generate_summary_filename(timestamp)
    files.append(summary_filename)
    summary = BackupSummary(
        timestamp=timestamp,
        tenant_domain=domain,
        tool_version=tool_version,
        start_time=start_time,
        end_time=clock(),
        resources=resources,
        files=files,
        output_directory=output_dir,
    )
    try:
        write_json_file(output_dir, summary_filename, summary.to_dict())
    except OSError as e:
        summary.summary_error = str(e)
        logger.warning(f"Failed to write summary file {summary_filename}: {e}")

    _log_phase(BackupPhase.DONE)
    logger.info(summary.message)
    return summary


def main():
    parser = argparse.ArgumentParser(
        prog="auth0-backup",
        description="Back up Auth0 tenant configuration to JSON files"
    )
    parser.add_argument("--domain", default=os.environ.get("AUTH0_DOMAIN"),
                        help="Auth0 tenant domain (or AUTH0_DOMAIN env var)")
    parser.add_argument("--token", default=os.environ.get("AUTH0_TOKEN"),
                        help="Management API token (or AUTH0_TOKEN env var)")
    parser.add_argument("--insecure", action="store_true",
                        default=bool(os.environ.get("AUTH0_EXPORT_INSECURE")),
                        help="Skip TLS certificate verification")
    parser.add_argument("--output-dir", "-o", default=".",
                        help="Existing, writable output directory (default: current directory)")
    parser.add_argument("--resources", "-r", default="all",
                        help=f"Comma-separated resource types to back up (default: all). "
                             f"Available: {', '.join(SUPPORTED_RESOURCE_TYPES)}")
    parser.add_argument("--page-size", type=int, default=DEFAULT_PAGE_SIZE,
                        help=f"Items per page when listing (default: {DEFAULT_PAGE_SIZE})")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose output")

    args = parser.parse_args()

    if not args.domain:
        parser.error("--domain is required (or set AUTH0_DOMAIN)")
    if not args.token:
        parser.error("--token is required (or set AUTH0_TOKEN)")

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    resource_types = None if args.resources == "all" else [
        r.strip() for r in args.resources.split(",") if r.strip()
    ]

    client = Auth0Client(args.domain, args.token, insecure=args.insecure)

    def report(resource_type: str, status: ResourceBackupStatus) -> None:
        if status.status == STATUS_SUCCESS:
            print(f"  {resource_type}: {status.count} -> {status.file_name}")
        else:
            print(f"  {resource_type}: ERROR: {status.error}")

    print(f"Backing up {args.domain} to {args.output_dir}...")
    try:
        summary = backup_tenant(args.token, args.domain, args.output_dir, resource_types,
                                client=client, page_size=args.page_size, progress=report)
    except BackupValidationError as e:
        print(f"  ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"\n{summary.message}")
    if summary.summary_error:
        print(f"  WARNING: summary file was not written: {summary.summary_error}")
    print("  Files:")
    for name in summary.files:
        print(f"    {name}")

    if summary.status == STATUS_FAILED:
        sys.exit(1)


if __name__ == "__main__":
    main()
