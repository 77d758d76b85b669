from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from ..errors import ConfigError
from ..lib.command import CmdResult, as_user
from ..lib.manifests import load_endpoints_manifest
from ..plan import Plan
from .common import PlanContext, checked_step, directory_step, file_step, guarded_step, service_step

PLAN_NAME = "mavlink-router"

REPO_URL = "https://github.com/intel/mavlink-router.git"
CONFIG_DIR = "/etc/mavlink-router"
CONFIG_PATH = f"{CONFIG_DIR}/main.conf"
# meson default prefix is /usr/local
INSTALLED_BINARY = "/usr/local/bin/mavlink-routerd"
BUILT_BINARY = "build/src/mavlink-routerd"
UNIT_DIR = "/usr/lib/systemd/system"


def _submodules_ready(r: CmdResult) -> bool:
    # "-" prefix: submodule not initialized
    return r.ok and not any(line.startswith("-") for line in r.stdout.splitlines())


def _expand_endpoints(manifest: Mapping[str, Any]) -> List[Dict[str, Any]]:
    defaults = manifest.get("defaults") or {}
    out: List[Dict[str, Any]] = []
    for entry in manifest.get("udp_endpoints") or []:
        rng = entry.get("range")
        if rng:
            first = int(rng.get("first_index", 0))
            for i in range(int(rng["count"])):
                out.append(
                    {
                        **defaults,
                        **{k: v for k, v in entry.items() if k != "range"},
                        "name": f"{rng['prefix']}{first + i}",
                        "port": int(entry["port"]) + i,
                    }
                )
        else:
            out.append({**defaults, **entry})
    return out


def render_main_conf(
    manifest: Mapping[str, Any],
    *,
    fc_device: str,
    fc_baud: int,
    overrides: Optional[Mapping[str, Any]] = None,
) -> str:
    """Render mavlink-router's INI-style endpoint table."""

    general = {**(manifest.get("general") or {}), **(overrides or {})}
    baud = int(general.pop("baud", fc_baud))

    endpoints = _expand_endpoints(manifest)
    names = [e["name"] for e in endpoints]
    dup = sorted({n for n in names if names.count(n) > 1})
    if dup:
        raise ConfigError(f"duplicate MAVLink endpoint names: {', '.join(dup)}")
    ports = [int(e["port"]) for e in endpoints]
    dup_ports = sorted({p for p in ports if ports.count(p) > 1})
    if dup_ports:
        raise ConfigError(f"duplicate MAVLink endpoint ports: {', '.join(map(str, dup_ports))}")

    lines = [
        "[General]",
        "# debug options are 'error, warning, info, debug'",
        f"DebugLogLevel = {general.get('log_level', 'info')}",
        f"TcpServerPort = {int(general.get('tcp_server_port', 5760))}",
        "[UartEndpoint flightcontroller]",
        f"Device = {fc_device}",
        f"Baud = {baud}",
    ]
    for e in endpoints:
        lines += [
            f"[UdpEndpoint {e['name']}]",
            f"Mode = {e['mode']}",
            f"Address = {e['address']}",
            f"Port = {int(e['port'])}",
            f"RetryTimeout = {int(e['retry_timeout'])}",
        ]
    return "\n".join(lines) + "\n"


def build(ctx: PlanContext) -> Plan:
    src = f"{ctx.home}/mavlink-router"

    main_conf = render_main_conf(
        load_endpoints_manifest(),
        fc_device=ctx.profile.fc_device,
        fc_baud=ctx.profile.fc_baud,
        overrides=ctx.config.mavlink,
    )

    steps = (
        guarded_step(
            "clone mavlink-router",
            "mavlink-router clone",
            f"{src}/.git",
            [["git", "clone", REPO_URL, src]],
            user=ctx.user,
        ),
        checked_step(
            "mavlink-router submodules",
            "mavlink-router submodules",
            as_user(ctx.user, ["git", "-C", src, "submodule", "status", "--recursive"]),
            [["git", "-C", src, "submodule", "update", "--init", "--recursive"]],
            predicate=_submodules_ready,
            user=ctx.user,
        ),
        guarded_step(
            "configure mavlink-router build",
            "mavlink-router configure",
            f"{src}/build/build.ninja",
            [["meson", "setup", "build", ".", f"-Dsystemdsystemunitdir={UNIT_DIR}"]],
            cwd=src,
            user=ctx.user,
        ),
        guarded_step(
            "build mavlink-router",
            "mavlink-router build",
            f"{src}/{BUILT_BINARY}",
            [["ninja", "-C", "build"]],
            cwd=src,
            user=ctx.user,
        ),
        guarded_step(
            "install mavlink-router",
            "mavlink-router install",
            INSTALLED_BINARY,
            [["ninja", "-C", "build", "install"], ["ldconfig"]],
            cwd=src,
        ),
        directory_step("mavlink-router config dir", CONFIG_DIR),
        file_step("mavlink-router endpoints", CONFIG_PATH, main_conf, mode=0o644),
        # started on next boot, once the flight controller UART overlay is active
        service_step("enable mavlink-router", "mavlink-router.service", active=None),
    )

    return Plan(
        name=PLAN_NAME,
        steps=steps,
        description=f"MAVLink router (flight controller on {ctx.profile.fc_device})",
    )
