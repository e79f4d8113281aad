import signal
import sys
import threading
from pathlib import Path

from dotenv import load_dotenv

from app.config import Settings
from app.main import build_services, configure_logging


def main() -> int:
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    services = build_services(settings)
    if not services.sync.start():
        print("Token price sync failed to start (is the database reachable?)")
        return 1

    print(f"Token price sync running: {len(services.sync.mapper)} pairs every {settings.refresh_interval:g}s. Ctrl+C to stop.")
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    stop_event.wait()
    print("Stopping token price sync...")
    services.sync.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
