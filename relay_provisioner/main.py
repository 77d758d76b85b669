from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG_PATH, ProvisionConfig, load_config
from .errors import ConfigError, PlanValidationError
from .lib import systemd
from .lib.command import CommandFailed
from .lib.manifests import profile_ids
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import Runner
from .plan import Plan, select_plans
from .plans import PLAN_NAMES, PlanContext, build_plans
from .profiles import detect_profile, load_profile
from .report import EXIT_ABORTED, EXIT_VALIDATION, RunReport, RunStatus
from .report_store import dump_report, format_saved, load_report, save_report

logger = logging.getLogger(__name__)


DEFAULT_REPORT_PATH = "/var/lib/relay-provisioner/last-run.json"


def resolve_profile(cli_profile: Optional[str], cfg: ProvisionConfig) -> str:
    """CLI flag, then config file, then device-tree detection."""

    pid = cli_profile or cfg.profile or detect_profile()
    if not pid:
        raise ConfigError(f"Cannot detect board; pass --profile ({'|'.join(profile_ids())})")
    return pid


def prepare(
    *,
    config_path: Optional[str] = DEFAULT_CONFIG_PATH,
    profile: Optional[str] = None,
    user: Optional[str] = None,
    disable_wifi: Optional[bool] = None,
    reboot: Optional[bool] = None,
    plan_names: Optional[List[str]] = None,
    unit_dir: str = systemd.SYSTEM_UNIT_DIR,
) -> tuple[ProvisionConfig, List[Plan]]:
    """Resolve every option up front and build the selected plans (no probing)."""

    cfg = load_config(config_path).with_overrides(
        profile=profile,
        user=user,
        disable_wifi=disable_wifi,
        reboot=reboot,
    )
    prof = load_profile(resolve_profile(profile, cfg))
    ctx = PlanContext(profile=prof, config=cfg, user=cfg.user, home=cfg.user_home, unit_dir=unit_dir)
    logger.info("Profile %s (%s), operator %s", prof.id, prof.description, ctx.user)
    return cfg, select_plans(build_plans(ctx), plan_names)


def run(
    *,
    config_path: Optional[str] = DEFAULT_CONFIG_PATH,
    profile: Optional[str] = None,
    user: Optional[str] = None,
    disable_wifi: Optional[bool] = None,
    reboot: Optional[bool] = None,
    plan_names: Optional[List[str]] = None,
    dry_run: bool = False,
    report_path: Optional[str] = None,
    unit_dir: str = systemd.SYSTEM_UNIT_DIR,
) -> RunReport:
    """Build, validate and execute the plans; persist the report."""

    cfg, plans = prepare(
        config_path=config_path,
        profile=profile,
        user=user,
        disable_wifi=disable_wifi,
        reboot=reboot,
        plan_names=plan_names,
        unit_dir=unit_dir,
    )

    report = Runner(dry_run=dry_run).execute_all(plans)

    if report_path:
        save_report(report_path, report)

    if cfg.reboot and not dry_run:
        if report.status is RunStatus.ABORTED:
            logger.warning("Reboot requested but run aborted; not rebooting")
        else:
            logger.info("Rebooting now...")
            systemd.reboot()

    return report


def _print_plans(plans: List[Plan]) -> None:
    for plan in plans:
        print(f"[{plan.name}] {plan.description}")
        for step in plan.steps:
            flag = "" if step.fatal else " (non-fatal)"
            print(f"  - {step.name}  ({step.resource}){flag}")


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="relay-provisioner",
        description="Converge a Raspberry Pi into an ArduPilot telemetry/video relay.",
    )
    p.add_argument("--profile", choices=profile_ids(), default=None, help="Board profile (default: config, then auto-detect)")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML config file (optional)")
    p.add_argument("--plan", dest="plans", action="append", metavar="NAME", help=f"Run only these plans ({', '.join(PLAN_NAMES)})")
    p.add_argument("--dry-run", action="store_true", help="Probe only; report what would change")
    p.add_argument("--list-plans", action="store_true", help="Print plans and steps without probing")
    p.add_argument("--user", default=None, help="Operator account (default: SUDO_USER)")
    wifi = p.add_mutually_exclusive_group()
    wifi.add_argument("--disable-wifi", dest="disable_wifi", action="store_true", default=None)
    wifi.add_argument("--keep-wifi", dest="disable_wifi", action="store_false")
    p.add_argument("--reboot", action="store_true", default=None, help="Reboot after a successful run")
    p.add_argument("--log", default=None, help=f"Log file (default: {DEFAULT_LOG_PATH}; none on dry runs)")
    p.add_argument("--report", default=None, help=f"Report file .json|.yaml (default: {DEFAULT_REPORT_PATH}; none on dry runs)")
    p.add_argument("--output", choices=["text", "json", "yaml"], default="text", help="Report format on stdout")
    p.add_argument("--show-last", action="store_true", help="Print the last saved report and exit")
    p.add_argument("--verbose", "-v", action="store_true")

    args = p.parse_args(argv)

    if args.show_last:
        data = load_report(args.report or DEFAULT_REPORT_PATH)
        if not data:
            print("No saved report", file=sys.stderr)
            return EXIT_ABORTED
        sys.stdout.write(format_saved(data, args.output))
        return 0

    quiet = args.list_plans or args.dry_run
    configure_logging(
        log_path=args.log or (None if quiet else DEFAULT_LOG_PATH),
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    if args.list_plans:
        try:
            _, plans = prepare(
                config_path=args.config,
                profile=args.profile,
                user=args.user,
                disable_wifi=args.disable_wifi,
                plan_names=args.plans,
            )
        except PlanValidationError as e:
            print(f"Plan validation failed: {e}", file=sys.stderr)
            return EXIT_VALIDATION
        except ConfigError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return EXIT_ABORTED
        _print_plans(plans)
        return 0

    if not args.dry_run and os.geteuid() != 0:
        print("relay-provisioner must run as root (use sudo) unless --dry-run", file=sys.stderr)
        return EXIT_ABORTED

    try:
        report = run(
            config_path=args.config,
            profile=args.profile,
            user=args.user,
            disable_wifi=args.disable_wifi,
            reboot=args.reboot,
            plan_names=args.plans,
            dry_run=args.dry_run,
            report_path=args.report or (None if args.dry_run else DEFAULT_REPORT_PATH),
        )
    except PlanValidationError as e:
        logger.error("Plan validation failed: %s", e)
        print(f"Plan validation failed: {e}", file=sys.stderr)
        return EXIT_VALIDATION
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_ABORTED
    except CommandFailed as e:
        # only reachable from the final reboot
        logger.error("%s", e)
        return EXIT_ABORTED

    if args.output == "text":
        print("\n".join(report.summary_lines()))
    else:
        sys.stdout.write(dump_report(report, args.output))
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
