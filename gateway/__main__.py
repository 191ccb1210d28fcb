import argparse
import asyncio
import logging
import os

from duel.evaluator import DAMAGE_SCALES
from duel.models import MatchConfig

from .server import DuelServer


def main() -> None:
    parser = argparse.ArgumentParser(description="Card duel game server")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "4545")))
    parser.add_argument(
        "--damage-scale",
        choices=sorted(DAMAGE_SCALES),
        default=os.environ.get("DAMAGE_SCALE", "escalated"),
        help="Base damage table shared with client previews",
    )
    parser.add_argument(
        "--start-delay-ms",
        type=int,
        default=500,
        help="Delay between the second player joining and the first deal (milliseconds)",
    )
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper())

    config = MatchConfig(damage_scale=args.damage_scale, start_delay_ms=args.start_delay_ms)
    server = DuelServer(config)
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
