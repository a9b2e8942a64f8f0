from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .app import ChatApp
from .cli import build_arg_parser, configure_logging
from .config import EngineConfig
from .engine import ConversationEngine
from .exceptions import ConfigurationError


async def _run(cfg: EngineConfig) -> int:
    engine = ConversationEngine(cfg)
    if not await engine.initialize():
        logging.getLogger(__name__).error(engine.error)
        print(engine.error, file=sys.stderr)
        await engine.aclose()
        return 1
    app = ChatApp(engine)
    if cfg.question:
        answer = await app.answer_once(cfg.question.strip())
        return 0 if answer is not None else 1
    await app.run()
    return 0


def main(args: argparse.Namespace | None = None) -> None:
    if args is None:
        parser = build_arg_parser()
        args = parser.parse_args()
    configure_logging(args.log_level, args.log_file, args.log_console)
    logger = logging.getLogger(__name__)

    try:
        cfg = EngineConfig(**vars(args))
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        sys.exit(2)

    try:
        code = asyncio.run(_run(cfg))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
