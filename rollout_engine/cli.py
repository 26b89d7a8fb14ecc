import argparse
import asyncio
import json
import shlex
import signal
import sys

from .config import load_config
from .controller import RolloutController
from .failure import FailureInjector
from .health import HealthChecker, HttpHealthProbe, SimulatedHealthProbe
from .logger import LOG_LEVELS, get_logger, setup_logging
from .models import RolloutPlan, RolloutState
from .traffic import HttpTrafficController, InMemoryTrafficController
from .updater import CommandNodeUpdater, SimulatedNodeUpdater


def parse_failures(entries):
    """``step:target[=count]`` entries -> FailureInjector fail map"""
    fail_map = {}
    for entry in entries or []:
        step, _, rest = entry.partition(":")
        target_id, _, count = rest.partition("=")
        if not step or not target_id:
            raise ValueError(f"invalid failure entry: {entry!r}")
        fail_map.setdefault(step, {})[target_id] = int(count) if count else 1
    return fail_map


def build_controller(config, simulate=False, failure_injector=None):
    """Wire adapters for a config. Returns the controller and the HTTP clients to close."""
    if simulate:
        injector = failure_injector if failure_injector else FailureInjector()
        traffic = InMemoryTrafficController(serving=config.target_list, failure_injector=injector)
        updater = SimulatedNodeUpdater(injector)
        probe = SimulatedHealthProbe(failure_injector=injector)
        return RolloutController(traffic, updater, HealthChecker(probe), config), []

    if not config.lb_url:
        raise ValueError("lb_url is required unless --simulate is given")
    if not config.update_command:
        raise ValueError("update_command is required unless --simulate is given")
    traffic = HttpTrafficController(config.lb_url, timeout=config.request_timeout_s)
    probe = HttpHealthProbe(expected_status=config.health_status_code, timeout=config.request_timeout_s)
    updater = CommandNodeUpdater(config.update_command)
    return RolloutController(traffic, updater, HealthChecker(probe), config), [traffic, probe]


def _load(args):
    overrides = {
        "batch_size": args.batch_size,
        "target_list": args.targets.split(",") if args.targets else None,
    }
    if args.cmd == "rollout":
        overrides.update({
            "lb_url": args.lb_url,
            "update_command": shlex.split(args.update_command) if args.update_command else None,
            "fail_fast": False if args.no_fail_fast else None,
            "max_concurrency": args.max_concurrency,
        })
    return load_config(args.config, **overrides)


async def run_rollout(controller, closers=()):
    loop = asyncio.get_running_loop()

    def on_interrupt():
        if controller.status.state == RolloutState.RUNNING:
            controller.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError, ValueError):
        pass

    try:
        return await controller.start()
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError, ValueError):
            pass
        for closer in closers:
            await closer.aclose()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Rolling update orchestrator")
    parser.add_argument("--log-level", default="INFO", type=str.upper, choices=LOG_LEVELS)
    sub = parser.add_subparsers(dest="cmd", required=True)

    plan = sub.add_parser("plan", help="print the batch plan without touching any target")
    plan.add_argument("--config", required=True)
    plan.add_argument("--targets", help="comma separated target list, overrides the config")
    plan.add_argument("--batch-size", type=int)

    rollout = sub.add_parser("rollout", help="run the rolling update")
    rollout.add_argument("--config", required=True)
    rollout.add_argument("--targets", help="comma separated target list, overrides the config")
    rollout.add_argument("--batch-size", type=int)
    rollout.add_argument("--max-concurrency", type=int)
    rollout.add_argument("--lb-url")
    rollout.add_argument("--update-command", help="provisioning command, {target} is substituted")
    rollout.add_argument("--no-fail-fast", action="store_true")
    rollout.add_argument("--simulate", action="store_true", help="use in-memory adapters")
    rollout.add_argument("--fail", action="append", metavar="STEP:TARGET[=N]",
                         help="with --simulate, fail STEP for TARGET N times")

    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    logger = get_logger("cli")

    try:
        config = _load(args)
        if args.cmd == "plan":
            batches = RolloutPlan.build(config.target_list, config.batch_size).batches
            print(json.dumps([{"batch": b.index, "targets": b.target_ids} for b in batches], indent=2))
            return 0

        injector = FailureInjector(parse_failures(args.fail)) if args.simulate else None
        controller, closers = build_controller(config, args.simulate, injector)
    except (OSError, ValueError) as e:
        logger.error(f"{e}")
        print(f"Error: {e}")
        sys.exit(1)

    status = asyncio.run(run_rollout(controller, closers))
    print(json.dumps(status.to_dict(), indent=2))
    if status.state != RolloutState.SUCCEEDED:
        sys.exit(1)
    return 0


if __name__ == "__main__":
    main()
