import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

# Load .env before settings are imported
load_dotenv()

from db import async_session_maker, init_models  # noqa: E402
from mockup_generator import MockupPipeline  # noqa: E402
import store  # noqa: E402


async def _count_pending() -> int:
    async with async_session_maker() as db:
        return await store.count_pending(db)


async def _run() -> int:
    await init_models()

    pending = await _count_pending()
    print(f"📦 {pending} variants need mockup templates.")
    if pending == 0:
        return 0

    summary = await MockupPipeline().run()
    print(f"🎉 Job {summary.job_id}: {summary.processed_count} processed, {len(summary.errors)} errors.")
    for error in summary.errors:
        print(f"   ❌ variant {error.item_id}: {error.message}")
    return 1 if summary.errors and summary.processed_count == 0 else 0


def main():
    parser = argparse.ArgumentParser(description="Generate Printful mockup templates for pending variants.")
    parser.add_argument("--pending", action="store_true", help="only print the number of pending variants")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        if args.pending:
            async def _pending_only():
                await init_models()
                return await _count_pending()

            print(asyncio.run(_pending_only()))
            sys.exit(0)
        sys.exit(asyncio.run(_run()))
    except Exception as e:
        print("❌ Error:", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
