from __future__ import annotations

import pytest

from relay_provisioner.config import ProvisionConfig
from relay_provisioner.errors import ConfigError
from relay_provisioner.pipeline import Runner
from relay_provisioner.plan import Plan, validate_plans
from relay_provisioner.plans import PLAN_NAMES, PlanContext, build_plans
from relay_provisioner.plans import plan_10_system, plan_40_mavlink_router, plan_50_rtsp, plan_60_lte
from relay_provisioner.plans.plan_40_mavlink_router import render_main_conf
from relay_provisioner.lib.manifests import load_endpoints_manifest
from relay_provisioner.profiles import load_profile
from relay_provisioner.probes import FileLineProbe, ServiceStateProbe
from relay_provisioner.report import EXIT_OK, StepOutcome
from relay_provisioner.resources import ResourceKind


def _ctx(profile="pi5", *, home="/home/pilot", unit_dir="/etc/systemd/system", **raw):
    return PlanContext(
        profile=load_profile(profile),
        config=ProvisionConfig(raw=raw),
        user="pilot",
        home=home,
        unit_dir=unit_dir,
    )


def _step_names(plan):
    return [s.name for s in plan.steps]


@pytest.mark.parametrize("profile", ["pi5", "pizero", "cm4"])
def test_all_plans_build_and_validate(profile):
    plans = build_plans(_ctx(profile))
    assert [p.name for p in plans] == PLAN_NAMES
    validate_plans(plans)


def test_pi5_boot_overlays():
    plan = plan_10_system.build(_ctx("pi5"))
    lines = [
        s.action.text
        for s in plan.steps
        if s.resource.kind is ResourceKind.FILE_LINE and s.resource.key.startswith("/boot/firmware/config.txt:dtoverlay=uart")
    ]
    assert lines == ["dtoverlay=uart0", "dtoverlay=uart2", "dtoverlay=uart3", "dtoverlay=uart5"]
    assert "boot overlay disable-bt" in _step_names(plan)


def test_wifi_policy():
    disabled = plan_10_system.build(_ctx(disable_wifi=True))
    kept = plan_10_system.build(_ctx(disable_wifi=False))

    assert "disable onboard WiFi overlay" in _step_names(disabled)
    rfkill = next(s for s in disabled.steps if s.name == "rfkill block wifi")
    assert not rfkill.fatal

    assert "keep onboard WiFi (no disable overlay)" in _step_names(kept)
    assert all(not s.fatal for s in kept.steps if s.name in {"rfkill unblock wifi", "bring up wlan0"})


def test_system_plan_disables_modem_manager():
    plan = plan_10_system.build(_ctx())
    last = plan.steps[-1]
    assert last.resource.key == "ModemManager.service"
    assert last.probe.enabled is False


def test_main_conf_uses_profile_uart():
    pi5 = plan_40_mavlink_router.build(_ctx("pi5"))
    cm4 = plan_40_mavlink_router.build(_ctx("cm4"))

    def conf(plan):
        return next(s for s in plan.steps if s.resource.key == plan_40_mavlink_router.CONFIG_PATH).action.content

    assert "[UartEndpoint flightcontroller]\nDevice = /dev/ttyAMA0\nBaud = 115200\n" in conf(pi5)
    assert "Device = /dev/ttyAMA2" in conf(cm4)


def test_main_conf_endpoint_table():
    text = render_main_conf(load_endpoints_manifest(), fc_device="/dev/ttyAMA0", fc_baud=115200)

    assert text.startswith("[General]\n")
    assert "DebugLogLevel = debug\nTcpServerPort = 5760\n" in text
    assert text.count("[UdpEndpoint ") == 23
    assert "[UdpEndpoint Internal7]\nMode = Normal\nAddress = 0.0.0.0\nPort = 10007\nRetryTimeout = 5\n" in text
    assert "[UdpEndpoint Internal10]\nMode = Normal\nAddress = 0.0.0.0\nPort = 10010\n" in text
    assert "[UdpEndpoint External10]\nMode = Server\nAddress = 0.0.0.0\nPort = 11010\n" in text
    assert "[UdpEndpoint Support1]\nMode = Server\nAddress = 0.0.0.0\nPort = 10021\n" in text


def test_main_conf_overrides():
    text = render_main_conf(
        load_endpoints_manifest(),
        fc_device="/dev/ttyAMA0",
        fc_baud=115200,
        overrides={"baud": 921600, "tcp_server_port": 5770, "log_level": "info"},
    )
    assert "Baud = 921600" in text
    assert "TcpServerPort = 5770" in text
    assert "DebugLogLevel = info" in text


def test_main_conf_rejects_duplicate_ports():
    manifest = {
        "defaults": {"address": "0.0.0.0", "retry_timeout": 5},
        "udp_endpoints": [
            {"name": "a", "mode": "Server", "port": 10001},
            {"name": "b", "mode": "Server", "port": 10001},
        ],
    }
    with pytest.raises(ConfigError):
        render_main_conf(manifest, fc_device="/dev/ttyAMA0", fc_baud=115200)


def test_rtsp_encoder_per_profile():
    video = {"width": 1280, "height": 720, "framerate": 30, "bitrate": 2000}
    pi5 = plan_50_rtsp.launch_pipeline(load_profile("pi5"), **video)
    zero = plan_50_rtsp.launch_pipeline(load_profile("pizero"), **video)

    assert "x264enc" in pi5 and "bitrate=2000" in pi5
    assert "v4l2h264enc" in zero and "video_bitrate=2000000" in zero
    assert pi5.startswith("( libcamerasrc ! ") and pi5.endswith("rtph264pay name=pay0 pt=96 config-interval=1 )")


def test_rtsp_plan_renders_script_and_unit():
    plan = plan_50_rtsp.build(_ctx(rtsp={"port": 8600, "mount": "cam"}))
    script = next(s for s in plan.steps if s.resource.key == "/home/pilot/gst-rtsp-server/stream.py")
    assert 'PORT = "8600"' in script.action.content
    assert 'MOUNT = "/cam"' in script.action.content
    assert "LAUNCH = '( libcamerasrc" in script.action.content
    assert script.action.mode == 0o755
    assert script.action.owner == "pilot"

    unit = next(s for s in plan.steps if s.resource.kind is ResourceKind.SERVICE_UNIT)
    assert "User=pilot" in unit.action.content
    assert "ExecStart=/opt/rtsp-venv/bin/python3 /home/pilot/gst-rtsp-server/stream.py" in unit.action.content


def test_lte_plan():
    plan = plan_60_lte.build(_ctx())
    block_step = plan.steps[0]
    block = block_step.action.text
    # the appended block satisfies its own check
    assert isinstance(block_step.probe, FileLineProbe)
    assert block_step.probe.found_in(block)
    assert 'interface "usb0" {' in block

    script = plan.steps[1].action.content
    assert "AT+QCFG=\"usbnet\",1" in script
    assert "MODEM_PORT=/dev/ttyUSB2" in script
    assert "sleep 30" not in script

    unit_step = plan.steps[2]
    assert unit_step.resource.key == "dhclient-usb0-delayed.service"
    assert unit_step.action.start is False


def test_vpn_agents_can_be_disabled():
    plans = {p.name: p for p in build_plans(_ctx(vpn={"zerotier": False, "tailscale": True}))}
    names = _step_names(plans["vpn"])
    assert "install Tailscale" in names
    assert "install ZeroTier" not in names


def test_packages_include_extras_once():
    plans = {p.name: p for p in build_plans(_ctx(extra_packages=["htop", "git"]))}
    pkgs = [s.resource.key for s in plans["packages"].steps if s.resource.kind is ResourceKind.PACKAGE]
    assert pkgs.count("git") == 1
    assert pkgs[-1] == "htop"
    assert "isc-dhcp-client" in pkgs


def test_apt_upgrade_optional():
    without = {p.name: p for p in build_plans(_ctx())}["packages"]
    with_upgrade = {p.name: p for p in build_plans(_ctx(apt_upgrade=True))}["packages"]
    assert "upgrade installed packages" not in _step_names(without)
    assert _step_names(with_upgrade)[1] == "upgrade installed packages"


def test_rtsp_start_retried_after_failed_start(tmp_path, fake_cmd):
    rtsp = plan_50_rtsp.build(_ctx(unit_dir=str(tmp_path)))
    plan = Plan("rtsp", rtsp.steps[-2:])
    fake_cmd.on(["systemctl", "restart"], returncode=1, stderr="Job failed")

    first = Runner().execute(plan)
    assert [r.outcome for r in first.records] == [StepOutcome.FAILED]
    assert (tmp_path / "rtsp-stream.service").exists()

    # the unit file is in place now; the service is still down
    fake_cmd.calls.clear()
    fake_cmd.on(["systemctl", "is-enabled", "rtsp-stream.service"], stdout="enabled\n")
    fake_cmd.on(["systemctl", "is-active", "rtsp-stream.service"], returncode=3, stdout="failed\n")

    second = Runner().execute(plan)

    assert [r.outcome for r in second.records] == [StepOutcome.SKIPPED, StepOutcome.APPLIED]
    assert fake_cmd.called(["systemctl", "start", "rtsp-stream.service"])
    assert second.exit_code == EXIT_OK


def test_lte_unit_enable_checked_apart_from_unit_file():
    plan = plan_60_lte.build(_ctx())
    last = plan.steps[-1]
    assert isinstance(last.probe, ServiceStateProbe)
    assert last.resource.key == "dhclient-usb0-delayed.service"
    assert last.probe.enabled is True
    assert last.probe.active is None


def _mavlink_steps(home):
    plan = plan_40_mavlink_router.build(_ctx(home=str(home)))
    return {s.resource.key: s for s in plan.steps}


def test_submodules_retried_after_partial_clone(tmp_path, fake_cmd):
    src = tmp_path / "mavlink-router"
    (src / ".git").mkdir(parents=True)
    steps = _mavlink_steps(tmp_path)
    plan = Plan("mavlink-router", (steps["mavlink-router clone"], steps["mavlink-router submodules"]))
    fake_cmd.on(
        ["runuser", "-u", "pilot", "--", "git", "-C", str(src), "submodule", "status"],
        stdout="-4f1a2b3c modules/mavlink_c_library_v2\n",
    )

    report = Runner().execute(plan)

    assert [r.outcome for r in report.records] == [StepOutcome.SKIPPED, StepOutcome.APPLIED]
    assert not fake_cmd.called(["runuser", "-u", "pilot", "--", "git", "clone"])
    assert fake_cmd.called(
        ["runuser", "-u", "pilot", "--", "git", "-C", str(src), "submodule", "update", "--init", "--recursive"]
    )


def test_submodules_converged_when_initialized(tmp_path, fake_cmd):
    src = tmp_path / "mavlink-router"
    step = _mavlink_steps(tmp_path)["mavlink-router submodules"]
    fake_cmd.on(
        ["runuser", "-u", "pilot", "--", "git", "-C", str(src), "submodule", "status"],
        stdout=" 4f1a2b3c modules/mavlink_c_library_v2 (heads/master)\n",
    )
    assert step.probe.check().converged


def test_build_runs_as_operator_and_install_as_root(tmp_path):
    steps = _mavlink_steps(tmp_path)
    build = steps["mavlink-router build"]
    install = steps["mavlink-router install"]

    assert build.action.user == "pilot"
    assert build.action.commands == [["ninja", "-C", "build"]]
    assert str(build.probe.creates) == f"{tmp_path}/mavlink-router/build/src/mavlink-routerd"

    assert install.action.user is None
    assert install.action.commands == [["ninja", "-C", "build", "install"], ["ldconfig"]]
