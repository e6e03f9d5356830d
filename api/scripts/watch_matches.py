import argparse
import logging
import sys
import time
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mutual_match.config import COUNTDOWN_TICK_SECONDS, SYNC_INTERVAL_SECONDS
from mutual_match.database import SessionLocal
from mutual_match.services.matching import MatchingService
from mutual_match.store import DocumentStore


def _print_entries(session) -> None:
    print(f"[{session.timer.epoch_id}] {len(session.entries)} matches, {session.timer.remaining_seconds}s left")
    for entry in session.entries:
        print(f"- {entry.match_id}: {entry.counterpart_snapshot.display_name} ({entry.status.value})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a matching client session for one user")
    parser.add_argument("user_id")
    parser.add_argument("--tick-seconds", type=float, default=COUNTDOWN_TICK_SECONDS)
    parser.add_argument("--sync-seconds", type=float, default=SYNC_INTERVAL_SECONDS)
    parser.add_argument("--report-seconds", type=float, default=30.0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    service = MatchingService(DocumentStore(SessionLocal))
    with service.open_session(args.user_id, tick_seconds=args.tick_seconds, sync_seconds=args.sync_seconds) as session:
        try:
            while True:
                _print_entries(session)
                time.sleep(args.report_seconds)
        except KeyboardInterrupt:
            print("Session closed")


if __name__ == "__main__":
    main()
