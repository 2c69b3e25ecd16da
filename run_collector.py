"""Convenience script for running a collection for one task locally."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

# Ensure the src directory is on the Python path so the contentcollector package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from contentcollector.config import CollectorSettings  # noqa: E402  (import after path setup)
from contentcollector.models import Source  # noqa: E402
from contentcollector.services.collector import CollectionOrchestrator  # noqa: E402
from contentcollector.services.progress import ProgressStream  # noqa: E402
from contentcollector.storage import StorageError, TaskStore, UnknownTaskError  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--task", required=True, help="Task identifier to collect for")
    parser.add_argument(
        "--sources",
        type=Path,
        help="JSON file with a list of sources to store for the task before collecting",
    )
    parser.add_argument("--blob-root", type=Path, help="Directory holding task data")
    parser.add_argument("--settings", type=Path, help="JSON file with collector settings")
    return parser.parse_args(argv)


async def _collect(task_id: str, store: TaskStore, settings: CollectorSettings) -> bool:
    stream = ProgressStream()
    orchestrator = CollectionOrchestrator(store, settings=settings)
    run = asyncio.create_task(orchestrator.run(task_id, store.selected_sources(task_id), stream))
    async for event in stream:
        print(event.model_dump_json(), flush=True)
    return await run is not None


def main(argv: list[str] | None = None) -> None:
    """Store the optional source list and print every progress event as a JSON line."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    args = _parse_args(argv)

    try:
        settings = (
            CollectorSettings.from_file(args.settings) if args.settings else CollectorSettings.load()
        )
    except (FileNotFoundError, ValueError) as exc:
        logging.error("Could not load collector settings: %s", exc)
        sys.exit(1)

    store = TaskStore(args.blob_root)

    if args.sources is not None:
        try:
            raw = json.loads(args.sources.read_text(encoding="utf-8"))
            sources = TypeAdapter(list[Source]).validate_python(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logging.error("Could not load sources from %s: %s", args.sources, exc)
            sys.exit(1)
        store.save_sources(args.task, sources)

    try:
        succeeded = asyncio.run(_collect(args.task, store, settings))
    except UnknownTaskError:
        logging.error("Task %s has no sources; pass --sources to add some", args.task)
        sys.exit(1)
    except StorageError as exc:
        logging.error("Could not read task data: %s", exc)
        sys.exit(1)

    if not succeeded:
        sys.exit(1)


if __name__ == "__main__":
    main()
