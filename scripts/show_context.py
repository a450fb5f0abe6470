from __future__ import annotations

import argparse
import logging

from cryptochat.config import settings
from cryptochat.context.serializer import build_context, build_system_prompt
from cryptochat.storage import DERIVED_KEY, JsonFileSnapshotStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print the LLM context block built from the stored snapshot.")
    parser.add_argument(
        "--system-prompt",
        action="store_true",
        help="Wrap the context in the full system prompt sent to the model.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    store = JsonFileSnapshotStore(settings.snapshot_dir)
    context = build_context(store.read(DERIVED_KEY), store.read("global"), store.read("topCoins"))
    logger.info("Context built from %s: %s lines", store.root, len(context.splitlines()))
    print(build_system_prompt(context) if args.system_prompt else context)


if __name__ == "__main__":
    main()
