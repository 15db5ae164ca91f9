import argparse
import logging
import sys

from nicegui import app as ng_app
from nicegui import ui

from arm_commander.common.logging_config import TRACE, attach_ui_log, configure_logging
from arm_commander.config import CONNECTION_MODES, ConnectionConfig
from arm_commander.constants import LOG_LEVEL, SERVER_HOST, SERVER_PORT
from arm_commander.controller import ArmController
from arm_commander.pages.control import ControlPage
from arm_commander.state import arm_state

# Single controller shared by every browser tab
controller = ArmController(config=ConnectionConfig.from_env(), state=arm_state)
control_page = ControlPage(controller)


@ui.page("/")
def index() -> None:
    control_page.build()
    if control_page.response_log:
        attach_ui_log(control_page.response_log)


async def _app_shutdown() -> None:
    await controller.shutdown()
    logging.info("Controller stopped")


ng_app.on_shutdown(_app_shutdown)


def main() -> None:
    parser = argparse.ArgumentParser(description="Robotic arm NiceGUI commander")
    parser.add_argument("--host", default=SERVER_HOST, help="Webserver bind host")
    parser.add_argument("--port", type=int, default=SERVER_PORT, help="Webserver bind port")
    parser.add_argument(
        "--mode",
        choices=CONNECTION_MODES,
        help="Device target: fixed WiFi address or local mock device",
    )
    parser.add_argument("--device-address", help="Device address for wifi mode")
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set log level",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity; -v=INFO, -vv=DEBUG",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Enable WARNING logging"
    )
    args, _ = parser.parse_known_args()

    if args.mode or args.device_address:
        controller.select_target(mode=args.mode, address=args.device_address)

    # Resolve log level priority: explicit --log-level > -v/-q > env default from constants
    if args.log_level:
        if args.log_level == "TRACE":
            level = TRACE
        else:
            level = getattr(logging, args.log_level)
    elif args.verbose >= 3:
        level = TRACE
    elif args.verbose >= 2:
        level = logging.DEBUG
    elif args.verbose == 1:
        level = logging.INFO
    elif args.quiet:
        level = logging.WARNING
    else:
        level = LOG_LEVEL

    configure_logging(level)
    logging.info(f"Webserver bind: host={args.host} port={args.port}")
    logging.info(
        f"Device target: mode={controller.config.mode} url={controller.config.base_url}"
    )

    ui.run(
        title="Robotic Arm Controller",
        host=args.host,
        port=int(args.port),
        reload=False,
        show=False,
        loop="uvloop" if sys.platform != "win32" else "asyncio",
        http="httptools",
        binding_refresh_interval=0.05,
    )


if __name__ in {"__main__", "__mp_main__"}:
    main()
