from __future__ import annotations

from ..plan import Plan
from .common import PlanContext, file_step, line_step, service_step, unit_step

PLAN_NAME = "lte"

DHCLIENT_CONF = "/etc/dhcp/dhclient.conf"
SETUP_SCRIPT = "/usr/local/sbin/relay-lte-setup"


def dhclient_block(iface: str) -> str:
    return "\n".join(
        [
            "",
            f'interface "{iface}" {{',
            "  request subnet-mask, broadcast-address, time-offset, routers,",
            "          domain-name, domain-name-servers, host-name;",
            "}",
            "",
        ]
    )


def render_setup_script(*, iface: str, modem_port: str, timeout: int) -> str:
    """Boot-time modem setup: RNDIS mode, wait for the link, then DHCP.

    Waits by polling for the modem port and the network interface (bounded by
    ``timeout`` seconds each) instead of a fixed sleep.
    """

    return "\n".join(
        [
            "#!/bin/sh",
            "# Managed by relay-provisioner; local edits are overwritten.",
            "set -u",
            "",
            f"MODEM_PORT={modem_port}",
            f"IFACE={iface}",
            f"TIMEOUT={int(timeout)}",
            "",
            "wait_for() {",
            '    i=0',
            '    while [ ! -e "$1" ]; do',
            '        i=$((i + 1))',
            '        if [ "$i" -ge "$TIMEOUT" ]; then',
            '            echo "timed out waiting for $1" >&2',
            "            return 1",
            "        fi",
            "        sleep 1",
            "    done",
            "}",
            "",
            'wait_for "$MODEM_PORT" || exit 1',
            "# Quectel: USB network in RNDIS mode (persisted by the modem)",
            "printf 'AT+QCFG=\"usbnet\",1\\r' > \"$MODEM_PORT\"",
            "sleep 1",
            "printf 'AT\\r' > \"$MODEM_PORT\"",
            "",
            'wait_for "/sys/class/net/$IFACE" || exit 1',
            '/usr/sbin/dhclient -r "$IFACE" || true',
            'exec /usr/sbin/dhclient "$IFACE"',
            "",
        ]
    )


def render_unit(iface: str) -> str:
    return "\n".join(
        [
            "[Unit]",
            f"Description=Delayed DHCP client for {iface} (RNDIS)",
            "After=network.target",
            "Wants=network-online.target",
            "",
            "[Service]",
            "Type=oneshot",
            f"ExecStart={SETUP_SCRIPT}",
            "RemainAfterExit=true",
            "",
            "[Install]",
            "WantedBy=multi-user.target",
            "",
        ]
    )


def unit_name(iface: str) -> str:
    return f"dhclient-{iface}-delayed.service"


def build(ctx: PlanContext) -> Plan:
    iface = ctx.config.lte_interface

    steps = (
        line_step(
            f"dhclient options for {iface}",
            DHCLIENT_CONF,
            dhclient_block(iface),
            match=rf'^\s*interface\s+"{iface}"',
        ),
        file_step(
            "LTE modem setup script",
            SETUP_SCRIPT,
            render_setup_script(
                iface=iface,
                modem_port=ctx.config.lte_modem_port,
                timeout=ctx.config.lte_ready_timeout,
            ),
            mode=0o755,
        ),
        # runs at boot only; starting it now would block on the modem
        unit_step(
            f"delayed DHCP service for {iface}",
            unit_name(iface),
            render_unit(iface),
            unit_dir=ctx.unit_dir,
            start=False,
        ),
        service_step(f"enable delayed DHCP for {iface}", unit_name(iface), active=None),
    )

    return Plan(name=PLAN_NAME, steps=steps, description=f"LTE modem data path on {iface}")
