import argparse
import asyncio
import signal
import sys

from .config import Settings
from .lib import keycodes, logger
from .lib.logger import info
from .runtime import Runtime
from .transports.line_protocol import LineProtocolTransport
from .version import __description__, __name__ as PROJECT, __version__
from .watcher import ScriptWatcher


def print_keys():
    table = keycodes.symbols()
    NAME_WIDTH = 28
    print("-" * (NAME_WIDTH + 8))
    print(f"{'Name':<{NAME_WIDTH}} {'Code':>7}")
    print("-" * (NAME_WIDTH + 8))
    for name in sorted(table, key=lambda n: (table[n], n)):
        if name.startswith(("KEY_", "BTN_")):
            print(f"{name:<{NAME_WIDTH}} {table[name]:>7}")
    print()


def build_parser():
    parser = argparse.ArgumentParser(
        prog=PROJECT,
        description=__description__,
        epilog="Speaks the line protocol on stdin/stdout. Logs go to stderr.",
    )
    parser.add_argument("-s", "--scripts", dest="scripts_dir", metavar="DIR",
                        help="directory of handler scripts to preload "
                             "(default: $SCRIPTKEYZ_SCRIPTS or ~/.config/scriptkeyz/scripts)")
    parser.add_argument("-w", "--watch", action="store_true",
                        help="reload scripts when their files change")
    addressing = parser.add_mutually_exclusive_group()
    addressing.add_argument("-t", "--targeted", dest="addressing", action="store_const",
                            const="targeted",
                            help="only deliver events that name their target script")
    addressing.add_argument("-b", "--broadcast", dest="addressing", action="store_const",
                            const="broadcast",
                            help="offer every event to every script, ignoring targets")
    parser.add_argument("--poll-timeout", type=float, metavar="SECONDS",
                        help="longest wait for host input per loop iteration")
    parser.add_argument("--step-budget", type=int, metavar="N",
                        help="fail a handler that runs N script lines without suspending")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log every event and scheduler decision")
    parser.add_argument("--list-keys", action="store_true",
                        help="list key names and codes usable in scripts")
    parser.add_argument("--version", action="version",
                        version=f"{PROJECT} v{__version__}")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.list_keys:
        print_keys()
        return 0

    logger.VERBOSE = args.verbose
    try:
        settings = Settings.from_environ(
            scripts_dir=args.scripts_dir,
            addressing=args.addressing,
            poll_timeout=args.poll_timeout,
            step_budget=args.step_budget,
            watch=args.watch or None,
            verbose=args.verbose or None,
        )
    except ValueError as err:
        print(f"{PROJECT}: {err}", file=sys.stderr)
        return 2

    info(f"{PROJECT} v{__version__}")
    transport = LineProtocolTransport.stdio()
    runtime = Runtime(transport, settings)
    runtime.load_directory(settings.scripts_dir)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def sig_stop(signame):
        info(f"signal {signame} received")
        runtime.stop()

    def sig_diag():
        runtime.dump_diagnostics()

    loop.add_signal_handler(signal.SIGINT, sig_stop, "INT")
    loop.add_signal_handler(signal.SIGTERM, sig_stop, "TERM")
    loop.add_signal_handler(signal.SIGUSR1, sig_diag)

    watcher = None
    if settings.watch:
        watcher = ScriptWatcher(runtime, settings.scripts_dir)
        try:
            watcher.start(loop)
        except OSError as err:
            logger.error(f"Cannot watch {settings.scripts_dir}: {err}")
            watcher = None

    try:
        loop.run_until_complete(runtime.run())
    finally:
        if watcher is not None:
            watcher.close()
        loop.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
