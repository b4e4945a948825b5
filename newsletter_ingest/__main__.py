"""Entry point for the newsletter ingestion pipeline.

Usage::

    python -m newsletter_ingest serve              # HTTP receive hook
    python -m newsletter_ingest ingest KEY         # ingest one stored message
    python -m newsletter_ingest resummarize KEY    # redo the summary of KEY
    python -m newsletter_ingest backfill           # ingest everything in the store
"""

from __future__ import annotations

import asyncio
import json
import sys

from .errors import RecordNotFoundError

_USAGE = "Usage: python -m newsletter_ingest <serve|ingest KEY|resummarize KEY|backfill>"


async def _run_once(service, mode: str, key: str | None) -> int:
    await service.start()
    try:
        if mode == "ingest":
            result = await service.ingest(key)
            print(result.model_dump_json())
            return 0 if result.ok else 1
        if mode == "resummarize":
            try:
                summary = await service.resummarize(key)
            except RecordNotFoundError as exc:
                print(str(exc), file=sys.stderr)
                return 1
            print(json.dumps(summary, ensure_ascii=False))
            return 0
        results = await service.backfill()
        return 0 if all(r.ok for r in results) else 1
    finally:
        await service.stop()


def main() -> None:
    args = sys.argv[1:]
    if not args or args[0] not in ("serve", "ingest", "resummarize", "backfill"):
        print(_USAGE, file=sys.stderr)
        sys.exit(1)

    mode = args[0]
    if mode in ("ingest", "resummarize") and len(args) != 2:
        print(_USAGE, file=sys.stderr)
        sys.exit(1)

    from .config import PipelineConfig
    from .logging import setup_logging
    from .service import IngestionService

    config = PipelineConfig()  # type: ignore[call-arg]
    setup_logging(json=config.log_json, level=config.log_level)

    if mode == "serve":
        import uvicorn

        from .api import create_app

        uvicorn.run(
            create_app(IngestionService(config)),
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
        )
        return

    key = args[1] if len(args) > 1 else None
    sys.exit(asyncio.run(_run_once(IngestionService(config), mode, key)))


if __name__ == "__main__":
    main()
