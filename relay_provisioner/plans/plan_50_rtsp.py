from __future__ import annotations

from ..lib.templates import render_template
from ..plan import Plan
from ..profiles import Profile
from .common import PlanContext, directory_step, file_step, guarded_step, service_step, unit_step

PLAN_NAME = "rtsp"

VENV_DIR = "/opt/rtsp-venv"
UNIT_NAME = "rtsp-stream.service"


def launch_pipeline(profile: Profile, *, width: int, height: int, framerate: int, bitrate: int) -> str:
    """gst-launch style pipeline for GstRtspServer; ``bitrate`` in kbit/s."""

    caps = f"video/x-raw,width={width},height={height},framerate={framerate}/1"
    if profile.encoder == "v4l2":
        encode = (
            f"{caps},format=YUV420 ! "
            f"v4l2h264enc extra-controls=controls,video_bitrate={bitrate * 1000} ! "
            "video/x-h264,level=(string)4"
        )
    else:
        encode = (
            f"{caps} ! videoconvert ! "
            f"x264enc tune=zerolatency speed-preset=ultrafast bitrate={bitrate} key-int-max={framerate}"
        )
    return f"( {profile.camera_source} ! {encode} ! h264parse ! rtph264pay name=pay0 pt=96 config-interval=1 )"


def render_unit(*, app_dir: str, user: str) -> str:
    return "\n".join(
        [
            "[Unit]",
            "Description=RTSP Streamer Service",
            "After=network.target",
            "",
            "[Service]",
            f"ExecStart={VENV_DIR}/bin/python3 {app_dir}/stream.py",
            f"WorkingDirectory={app_dir}",
            "Restart=always",
            "RestartSec=5",
            f"User={user}",
            "",
            "[Install]",
            "WantedBy=multi-user.target",
            "",
        ]
    )


def build(ctx: PlanContext) -> Plan:
    app_dir = f"{ctx.home}/gst-rtsp-server"
    video = ctx.config.rtsp_video

    script = render_template(
        "rtsp_stream.py.tmpl",
        port=ctx.config.rtsp_port,
        mount=ctx.config.rtsp_mount,
        launch=repr(launch_pipeline(ctx.profile, **video)),
    )

    steps = (
        guarded_step(
            "create RTSP venv",
            "venv rtsp",
            f"{VENV_DIR}/bin/python3",
            # system site packages provide the gi / GStreamer bindings
            [["python3", "-m", "venv", VENV_DIR, "--system-site-packages"]],
        ),
        directory_step("RTSP app dir", app_dir, owner=ctx.user),
        file_step("RTSP stream script", f"{app_dir}/stream.py", script, mode=0o755, owner=ctx.user),
        unit_step(
            "RTSP service",
            UNIT_NAME,
            render_unit(app_dir=app_dir, user=ctx.user),
            unit_dir=ctx.unit_dir,
        ),
        # enabled/active state is probed apart from the unit file
        service_step("RTSP service running", UNIT_NAME),
    )

    return Plan(
        name=PLAN_NAME,
        steps=steps,
        description=f"RTSP video on port {ctx.config.rtsp_port}{ctx.config.rtsp_mount} ({ctx.profile.encoder} encoder)",
    )
