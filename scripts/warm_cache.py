"""Pre-ingest films so the durable tier is warm before serving traffic.

Usage:
    uv run python scripts/warm_cache.py 27205 157336 \
      --ids-file reports/popular-films.txt \
      --output reports/warm-cache.json

Configuration comes from the same environment variables as the server
(``TMDB_API_KEY``, ``FILMKB_DURABLE_BACKEND``, ``FILMKB_DURABLE_URL``,
``LLM_*``).  Exits non-zero when any film fails to ingest.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from filmkb import server
from filmkb.ingestion import IngestionOrchestrator
from filmkb.ingestion import ProgressEvent


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("film_ids", nargs="*", type=int)
    parser.add_argument("--ids-file", default=None)
    parser.add_argument("--output", default=None)
    parser.add_argument("--concurrency", type=int, default=2)
    return parser.parse_args(argv)


def _load_ids(path: Path) -> list[int]:
    ids: list[int] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.split("#", 1)[0].strip()
            if line:
                ids.append(int(line))
    return ids


def _collect_ids(args: argparse.Namespace) -> list[int]:
    ids = list(args.film_ids)
    if args.ids_file:
        ids.extend(_load_ids(Path(args.ids_file)))
    return list(dict.fromkeys(ids))


def _summarize(film_id: int, events: list[ProgressEvent], *, ready: bool) -> dict:
    final = events[-1] if events else None
    per_source = {
        event.source.value: event.status.value
        for event in events
        if event.source is not None
        and event.status is not None
        and event.status.value != "loading"
    }
    return {
        "film_id": film_id,
        "ready": ready,
        "cached": bool(final and final.cached),
        "error": final.error if final else "no events",
        "sources": per_source,
    }


async def _warm(
    orchestrator: IngestionOrchestrator, film_ids: list[int], *, concurrency: int
) -> list[dict]:
    gate = asyncio.Semaphore(max(concurrency, 1))

    async def _one(film_id: int) -> dict:
        async with gate:
            events = await orchestrator.ingest(film_id)
        return _summarize(
            film_id, events, ready=orchestrator.store.is_ready(film_id)
        )

    rows = await asyncio.gather(*(_one(film_id) for film_id in film_ids))
    await orchestrator.drain()
    return list(rows)


async def _main() -> int:
    args = _parse_args()
    film_ids = _collect_ids(args)
    if not film_ids:
        print("no film ids given")
        return 2

    await server.configure(**server.load_configs_from_env())
    try:
        rows = await _warm(
            server._get_orchestrator(), film_ids, concurrency=args.concurrency
        )
    finally:
        await server.shutdown()

    report = {
        "films": rows,
        "ready": sum(1 for row in rows if row["ready"]),
        "failed": [row["film_id"] for row in rows if row["error"]],
    }
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as handle:
            json.dump(report, handle, indent=2, sort_keys=True, ensure_ascii=True)
            handle.write("\n")

    print(json.dumps(report, indent=2, sort_keys=True, ensure_ascii=True))
    return 1 if report["failed"] else 0


if __name__ == "__main__":
    load_dotenv(override=False)
    logging.basicConfig(level=logging.INFO)
    raise SystemExit(asyncio.run(_main()))
