import argparse
import asyncio
import logging
import signal
import sys
from contextlib import suppress
from functools import partial
from pathlib import Path

import websockets
from solders.keypair import Keypair

from memobench import __version__
from memobench.config import DEFAULT_CONFIG_FILE, BenchConfig, ConfigCreated, ConfigError, load_config
from memobench.controller import RunController, SetupError
from memobench.ledger import LedgerSnapshot
from memobench.logging_config import log_file_name, setup_logging
from memobench.memo import new_run_id
from memobench.report import StatsReporter
from memobench.rpc import SolanaRpc
from memobench.txn import load_keypair
from memobench.ws import SubscribeError, subscribe_logs

log = logging.getLogger("memobench.cli")

BANNER = r"""
  __  __                      ____                  _
 |  \/  | ___ _ __ ___   ___ | __ )  ___ _ __   ___| |__
 | |\/| |/ _ \ '_ ` _ \ / _ \|  _ \ / _ \ '_ \ / __| '_ \
 | |  | |  __/ | | | | | (_) | |_) |  __/ | | | (__| | | |
 |_|  |_|\___|_| |_| |_|\___/|____/ \___|_| |_|\___|_| |_|
"""


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="memobench", description="Solana transaction landing-time benchmark.")
    parser.add_argument("-c", "--config",
                        type=Path,
                        default=DEFAULT_CONFIG_FILE,
                        help="Path to the JSON config file (created if missing).",
                        )
    parser.add_argument("-l", "--log-dir",
                        type=Path,
                        default=Path("."),
                        help="Directory for the run's log file.",
                        )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def print_banner() -> None:
    print(BANNER)
    print(f"{__version__:>58}")
    print()


async def run_benchmark(config: BenchConfig, keypair: Keypair, run_id: str) -> LedgerSnapshot:
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    wallet = str(keypair.pubkey())

    async with SolanaRpc(config.rpc_url) as rpc, SolanaRpc(config.send_endpoint) as send_rpc:
        controller = RunController(
            config,
            keypair,
            run_id,
            rpc=rpc,
            submitter=send_rpc,
            subscribe=partial(subscribe_logs, config.ws_endpoint, wallet),
        )

        def _on_signal():
            # if nothing is listening yet there is nothing to clean up or report
            if not controller.interrupt():
                main_task.cancel()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
        try:
            await controller.check_balance()
            return await controller.run()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with suppress(NotImplementedError):
                    loop.remove_signal_handler(sig)


def main(argv=None) -> int:
    args = parse_args(argv)
    print_banner()

    run_id = new_run_id()
    args.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = args.log_dir / log_file_name(run_id)
    setup_logging(run_id, log_file)

    try:
        config = load_config(args.config)
        keypair = load_keypair(config.private_key)
    except ConfigCreated as e:
        log.info("%s, edit the config and restart", e)
        return 0
    except ConfigError as e:
        log.critical("%s", e)
        return 1

    reporter = StatsReporter()
    reporter.header(config, run_id, str(keypair.pubkey()))

    try:
        snapshot = asyncio.run(run_benchmark(config, keypair, run_id))
    except (asyncio.CancelledError, KeyboardInterrupt):
        log.info("Stopped before listening started, nothing to report")
        return 0
    except SetupError as e:
        log.critical("%s", e)
        return 1
    except (SubscribeError, websockets.WebSocketException, OSError) as e:
        log.critical("error subscribing to logs: %s", e)
        return 1

    reporter.summary(config, run_id, snapshot)
    print()
    print(f"Benchmark results saved to {log_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
