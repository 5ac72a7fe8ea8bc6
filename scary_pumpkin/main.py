# scary_pumpkin/main.py

import argparse
import logging
import signal
import sys
from typing import List, Optional

from scary_pumpkin import __version__, config
from scary_pumpkin.errors import ConfigurationError, EmptyPlaylist, HardwareAcquisitionError
from scary_pumpkin.gpio_devices import GpioController
from scary_pumpkin.orchestrator import Orchestrator

log = logging.getLogger("scary_pumpkin")

EXIT_OK = 0
EXIT_FATAL = 1


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="scary-pumpkin")
    parser.add_argument("--config", default=config.APP_SETTINGS_FILE, help="JSON settings file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None, gpio=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s - %(levelname)s - %(message)s")

    log.info(f"[MAIN] launching scary-pumpkin {__version__}")
    log.info("[MAIN] press Ctrl+C to exit")

    log.info(f"[MAIN] reading settings from {args.config} ...")
    try:
        settings = config.load_settings(args.config)
    except ConfigurationError as e:
        log.error(f"[MAIN] configuration error in {args.config}: {e}, shutting down")
        return EXIT_FATAL

    try:
        controller = GpioController(gpio)
    except HardwareAcquisitionError as e:
        log.error(f"[MAIN] error initializing GPIO controller: {e}, shutting down")
        return EXIT_FATAL

    pumpkin = Orchestrator(settings, controller)

    def on_signal(signum, _frame) -> None:
        log.info(f"[MAIN] received {signal.Signals(signum).name}")
        pumpkin.request_stop()

    previous = {sig: signal.signal(sig, on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}

    try:
        pumpkin.setup()
        pumpkin.startup()
        pumpkin.run()
    except (EmptyPlaylist, HardwareAcquisitionError) as e:
        log.error(f"[MAIN] {e}, shutting down")
        return EXIT_FATAL
    finally:
        pumpkin.shutdown()
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
