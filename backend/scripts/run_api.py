"""
Run the Veo Studio FastAPI server.

Flags override the UVICORN_* and studio environment variables, e.g.:

    python backend/scripts/run_api.py --port 8080 --media-root /tmp/veo --no-reload
"""
import argparse
import logging
import os
from typing import Optional, Sequence

import uvicorn

from veostudio.config import Config, configure_logging


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Serve the Veo Studio API (chat agent, actions, memory and media routes).",
    )
    parser.add_argument("--host", default=os.getenv("UVICORN_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("UVICORN_PORT", "8000")))
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=_env_flag("UVICORN_RELOAD", "true"),
        help="Restart on code changes (forces a single worker).",
    )
    parser.add_argument("--workers", type=int, default=int(os.getenv("UVICORN_WORKERS", "1")))
    parser.add_argument(
        "--media-root",
        default=None,
        help="Directory holding generated-images/ and generated-videos/ (MEDIA_ROOT).",
    )
    parser.add_argument("--log-level", default=None, help="LOG_LEVEL for the studio loggers.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _build_parser().parse_args(argv)

    # The app is imported by uvicorn (possibly in worker processes), so
    # overrides travel through the environment read by Config.from_env().
    if args.media_root:
        os.environ["MEDIA_ROOT"] = args.media_root
    if args.log_level:
        os.environ["LOG_LEVEL"] = args.log_level.upper()

    config = Config.from_env()
    configure_logging(config.log_level)

    workers = max(1, args.workers)
    if args.reload and workers > 1:
        logger.warning("[main] --reload runs a single worker; ignoring --workers=%d", workers)
        workers = 1

    logger.info(
        "[main] Serving on %s:%d (media under %s, agent model %s)",
        args.host,
        args.port,
        config.media_root,
        config.agent_model,
    )
    uvicorn.run(
        "veostudio.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
