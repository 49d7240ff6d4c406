import argparse
import asyncio
import logging

from cardroom.models import BettingStructure, TableConfig
from cardroom.variants import variant_names

from .server import HostServer

logging.basicConfig(level=logging.INFO)


def main() -> None:
    # CLI doubles as documentation for the table settings.
    parser = argparse.ArgumentParser(description="Card room table host")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--variant", default="holdem", choices=variant_names())
    parser.add_argument(
        "--structure",
        choices=[structure.value for structure in BettingStructure],
        help="Override the variant's default betting structure",
    )
    parser.add_argument("--seats", type=int, default=6)
    parser.add_argument("--starting-stack", type=int, default=10_000)
    parser.add_argument("--sb", type=int, default=50)
    parser.add_argument("--bb", type=int, default=100)
    parser.add_argument("--ante", type=int, default=0)
    parser.add_argument(
        "--move-time",
        type=int,
        default=15_000,
        help="Move time in milliseconds (0 disables timeout substitution)",
    )
    args = parser.parse_args()

    config = TableConfig(
        seats=args.seats,
        starting_stack=args.starting_stack,
        sb=args.sb,
        bb=args.bb,
        ante=args.ante,
        move_time_ms=args.move_time,
        variant=args.variant,
        structure=BettingStructure(args.structure) if args.structure else None,
    )

    server = HostServer(config)
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
