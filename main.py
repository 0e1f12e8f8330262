import argparse
import asyncio
import logging

from order_saga.demo import run_demo


async def main():
    parser = argparse.ArgumentParser(description="Run a few orders through the fulfillment saga.")
    parser.add_argument("--ship-delay", type=float, nargs=2, default=[0.5, 1.5], metavar=("MIN", "MAX"))
    parser.add_argument("--delivery-delay", type=float, nargs=2, default=[1.0, 2.0], metavar=("MIN", "MAX"))
    parser.add_argument("--journal", default=None, help="SQLite file for the event journal")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    summary = await run_demo(
        {
            "ship_delay": args.ship_delay,
            "delivery_delay": args.delivery_delay,
            "journal_path": args.journal,
        }
    )

    print("\n--- Final system state ---")
    for order_id, status in summary["orders"].items():
        print(f"  {order_id}: {status}")
    for item, stock in summary["inventory"].items():
        print(f"  {item}: {stock} units")
    print(f"Emails: {summary['emails']}")
    print(f"Shipments: {summary['shipments']}")
    print(f"Active topics: {', '.join(summary['topics'])}")


if __name__ == "__main__":
    asyncio.run(main())
