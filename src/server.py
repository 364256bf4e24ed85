"""Protean Engine runner for the ordering domain.

Starts the Engine that processes events asynchronously when
``event_processing = "async"`` (production): the outbox processor publishes
order events to the broker and subscriptions invoke the notification handler.

Usage:
    python src/server.py
    python src/server.py --test-mode   # Drain pending messages and exit
"""

import argparse

from protean.server.engine import Engine


def main():
    parser = argparse.ArgumentParser(description="Cartline Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process available messages once and exit",
    )
    args = parser.parse_args()

    from ordering.domain import ordering

    ordering.init()
    engine = Engine(ordering, test_mode=args.test_mode)
    engine.run()


if __name__ == "__main__":
    main()
