#!/usr/bin/env python3
"""Abort stale multipart uploads left behind in the bucket.

Usage:
  .venv/bin/python scripts/sweep_multipart.py --dry-run
  .venv/bin/python scripts/sweep_multipart.py --prefix videos/ --hours 48

Uploads initiated more than MULTIPART_SESSION_TTL_SECONDS ago (or --hours)
are aborted so their parts stop accruing storage. Use --dry-run to preview.
"""

from __future__ import annotations

import argparse
from dataclasses import replace

from objstore.common.config import get_settings
from objstore.main import create_service_bundle


def sweep_multipart_uploads(
    *, prefix: str = "", hours: int | None = None, dry_run: bool = False
) -> list[str]:
    settings = get_settings()
    if hours is not None:
        settings = replace(settings, MULTIPART_SESSION_TTL_SECONDS=hours * 3600)
    bundle = create_service_bundle(settings)
    return bundle.multipart().abort_orphaned(prefix, dry_run=dry_run)


def main() -> None:
    parser = argparse.ArgumentParser(description="Abort stale multipart uploads")
    parser.add_argument("--prefix", default="", help="Only consider keys under this prefix")
    parser.add_argument(
        "--hours",
        type=int,
        default=None,
        help="Abort uploads initiated more than N hours ago (default: session TTL)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print uploads that would be aborted",
    )
    args = parser.parse_args()
    upload_ids = sweep_multipart_uploads(
        prefix=args.prefix, hours=args.hours, dry_run=args.dry_run
    )
    if args.dry_run:
        print(f"[DRY-RUN] {len(upload_ids)} uploads would be aborted")
    else:
        print(f"Aborted {len(upload_ids)} uploads")
    for upload_id in upload_ids:
        print(f"  {upload_id}")


if __name__ == "__main__":
    main()
