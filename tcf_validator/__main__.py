"""Entry point for: python -m tcf_validator"""

import asyncio
import sys

from .cli import main, parse_args


def run() -> None:
    args = parse_args(sys.argv[1:])
    asyncio.run(main(args))


if __name__ == "__main__":
    run()
