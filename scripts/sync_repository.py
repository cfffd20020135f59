#!/usr/bin/env python
"""Sync a repository's issues into the local store from the CLI.

Usage::
    python scripts/sync_repository.py <owner/name> [--state all] [--pages 5] [--per-page 100]

Example::
    STORE_TYPE=redis python scripts/sync_repository.py facebook/react --pages 3

Pages are fetched one after another until ``--pages`` is reached or GitHub
returns a short page. The final sync status is printed as JSON.
"""
from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
import sys

from tqdm import tqdm

# Ensure project root is on PYTHONPATH when running via `python scripts/...`
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from issuescope.coordinator import MultiRepositorySearch  # noqa: E402  pylint: disable=wrong-import-position
from issuescope.github_client import parse_repository  # noqa: E402
from issuescope.issue_store import IssueStoreFactory  # noqa: E402
from issuescope.models import RepositoryConfig, SyncOptions  # noqa: E402


async def _main(repository: str, state: str, pages: int, per_page: int) -> int:
    owner, name = parse_repository(repository)
    full_name = f"{owner}/{name}"

    store = await IssueStoreFactory.create()
    coordinator = MultiRepositorySearch(store)
    if coordinator.get_repository(full_name) is None:
        coordinator.add_repository(RepositoryConfig(owner=owner, name=name))

    try:
        with tqdm(desc=f"Syncing {full_name}", unit="issue") as progress:
            def on_progress(synced: int, total: int):
                progress.update(1)

            for page in range(1, pages + 1):
                result = await coordinator.sync_repository(
                    full_name,
                    SyncOptions(state=state, per_page=per_page, page=page),
                    on_progress=on_progress,
                )
                if not result.success:
                    print(result.error, file=sys.stderr)
                    return 1
                progress.set_postfix(page=page)
                if result.data["total"] < per_page:
                    break

        status = await coordinator.get_sync_status(full_name)
        print(json.dumps(status.data, indent=2))
        return 0
    finally:
        await store.close()


def main():
    parser = argparse.ArgumentParser(description="Sync GitHub issues into the local store")
    parser.add_argument("repository", help="owner/name or a github.com URL")
    parser.add_argument("--state", choices=["open", "closed", "all"], default="all")
    parser.add_argument("--pages", type=int, default=1, help="Maximum number of pages to fetch")
    parser.add_argument("--per-page", type=int, default=100, help="Issues per page (1-100)")
    args = parser.parse_args()
    sys.exit(asyncio.run(_main(args.repository, args.state, args.pages, args.per_page)))


if __name__ == "__main__":
    main()
