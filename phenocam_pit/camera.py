# Camera-side entry points, run as `python -m phenocam_pit.camera <action>`.
#
# userboot.sh calls `install` and `upload` on every boot, cron calls
# `upload`, `ip-table` and `reboot`, and the operator tool calls
# `validate` and `check-firmware` over SSH.

import argparse
import functools
import logging
import os
import subprocess
import sys
import time
from datetime import datetime
from pathlib import Path

from . import constants
from .camera_api import CameraAPI, overlay_text
from .capture import CaptureCycle, command_output, network_identity
from .errors import AuthenticationError, CameraAPIError, PITError, SettingsError
from .schedule import build_schedule, write_schedule
from .settings import (
    read_flag, read_password, read_servers, read_settings, servers_text, write_flag,
)
from .transport import FTPTransport, SFTPTransport, exit_code, summarize

logger = logging.getLogger("phenocam_pit")

SITE_IP_TEMPLATE = Path(__file__).resolve().parent / "templates" / "site_ip.html"


def relocate(path, root, new_root):
    """`path` under `root` moved to the same place under `new_root`."""
    return os.path.join(new_root, os.path.relpath(path, root))


class CameraPaths:
    def __init__(self, cfg_dir=constants.CFG_DIR, tmp_dir=constants.TMP_DIR):
        self.cfg_dir = cfg_dir
        self.tmp_dir = tmp_dir
        cfg = functools.partial(relocate, root=constants.CFG_DIR, new_root=cfg_dir)
        tmp = functools.partial(relocate, root=constants.TMP_DIR, new_root=tmp_dir)
        self.settings = cfg(constants.SETTINGS_FILE)
        self.password = cfg(constants.PASSWORD_FILE)
        self.servers = cfg(constants.SERVER_FILE)
        self.update = cfg(constants.UPDATE_FILE)
        self.sftp_key = cfg(constants.SFTP_KEY_FILE)
        self.schedule = cfg(constants.SCHEDULE_DIR)
        self.install_log = tmp(constants.INSTALL_LOG)
        self.image_log = tmp(constants.IMAGE_LOG)


def setup_logging(logfile=None):
    if logfile:
        handler = logging.FileHandler(logfile)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.INFO)


def set_rgb(red, green, blue):
    subprocess.run([constants.SET_RGB, "0", str(red), str(green), str(blue)], check=False)


def ensure_server_file(paths):
    if not os.path.exists(paths.servers):
        with open(paths.servers, "w") as f:
            f.write(servers_text([constants.DEFAULT_SERVER]))
        os.chmod(paths.servers, 0o666)
        logger.info(f"using default host: {constants.DEFAULT_SERVER}")


def install(fixed=False, paths=None, api=None, rgb=set_rgb, reboot_camera=None,
            sleep=time.sleep, rng=None):
    """Apply settings and the upload schedule when update.txt reads TRUE."""
    paths = paths or CameraPaths()
    sleep(constants.BOOT_DELAY)
    ensure_server_file(paths)

    if not read_flag(paths.update):
        logger.info("no update requested, skipping the install routine")
        return constants.EXIT_OK

    logger.info(f"----- {datetime.now().strftime('%Y %m %d %H:%M:%S')} -----")
    try:
        settings = read_settings(paths.settings)
        password = read_password(paths.password)
    except SettingsError as e:
        logger.error(f"{e}, aborting install routine!")
        return constants.EXIT_FAILED

    api = api or CameraAPI(password)
    try:
        api.set_timezone(settings.offset)
        logger.info(f"time zone set to GMT{settings.offset}")
        header = overlay_text(settings.name, settings.offset)
        api.set_overlay(header)
        logger.info(f"header set to: {header}")
        api.apply_image_settings(settings)
    except CameraAPIError as e:
        logger.warning(f"could not apply camera settings: {e}")
    rgb(settings.red, settings.green, settings.blue)

    schedule = build_schedule(settings, fixed=fixed, rng=rng)
    os.makedirs(paths.schedule, exist_ok=True)
    write_schedule(schedule, paths.schedule)
    logger.info(f"crontab intervals set to: {schedule.minute_field}")
    logger.info("Finished initial setup")

    # only rerun on the next boot if update.txt is set to TRUE again
    write_flag(False, paths.update)

    if reboot_camera is None:
        return reboot(api=api, sleep=sleep)
    return reboot_camera()


def upload(paths=None, api=None, sftp=None, ftp=None, **kwargs):
    paths = paths or CameraPaths()
    settings = read_settings(paths.settings)
    servers = read_servers(paths.servers) or [constants.DEFAULT_SERVER]
    api = api or CameraAPI(read_password(paths.password))
    sftp = sftp or SFTPTransport(key_path=paths.sftp_key)

    logger.info("Starting image uploads ...")
    cycle = CaptureCycle(settings, servers, api, sftp=sftp, ftp=ftp,
                         workdir=paths.tmp_dir, image_log=paths.image_log, **kwargs)
    report = cycle.run_cycle()
    for state, state_report in report.states.items():
        for result in state_report.results:
            status = "ok" if result.ok else f"FAILED ({result.error})"
            logger.info(f"{state} -> {result.server} via {result.transport}: {status}")
    logger.info(f"upload cycle finished: {report.outcome.value}")
    return exit_code(report.outcome)


def validate(paths=None, sftp=None):
    """Try an sFTP login on every server, nothing is uploaded."""
    paths = paths or CameraPaths()
    sftp = sftp or SFTPTransport(key_path=paths.sftp_key)
    if not sftp.available():
        logger.info("no sFTP key found, nothing to be done...")
        return constants.EXIT_OK

    oks = []
    for server in read_servers(paths.servers):
        logger.info(f"Checking server: {server}")
        if sftp.probe(server):
            logger.info("SUCCESS... secure sFTP login worked")
            oks.append(True)
        else:
            logger.warning("FAILED... secure sFTP login did not work")
            logger.warning("[data uploads will fall back to insecure FTP mode]")
            oks.append(False)
    return exit_code(summarize(oks))


def render_site_ip(ip, stamp, template=SITE_IP_TEMPLATE):
    with open(template, "r") as f:
        html = f.read()
    return html.replace("DATETIME", stamp).replace("SITEIP", ip)


def ip_table(paths=None, ftp=None, run=command_output):
    """Publish the camera's current IP address to every server."""
    paths = paths or CameraPaths()
    ftp = ftp or FTPTransport()
    site = read_settings(paths.settings).name
    ip = network_identity(run)[0]

    logger.info("uploading IP table")
    page = os.path.join(paths.tmp_dir, f"{site}_ip.html")
    with open(page, "w") as f:
        f.write(render_site_ip(ip, datetime.now().strftime("%a %b %d %H:%M:%S %Y")))
    try:
        oks = [ftp.put(server, site, [page]) for server in read_servers(paths.servers)]
    finally:
        os.remove(page)
    return exit_code(summarize(oks))


def check_firmware(paths=None, api=None):
    paths = paths or CameraPaths()
    api = api or CameraAPI(read_password(paths.password))
    try:
        version = api.firmware_version()
    except AuthenticationError:
        logger.error("WARNING: The provided password was incorrect")
        logger.error("[please check the password and the proper use of escape characters]")
        return constants.EXIT_FAILED

    if version < constants.MIN_FIRMWARE:
        logger.error(f"WARNING: your firmware version {version} is not supported,")
        logger.error(f"please update your camera firmware to version B{constants.MIN_FIRMWARE} or later.")
        return constants.EXIT_FAILED
    logger.info(f"firmware version B{version} is supported")
    return constants.EXIT_OK


def reboot(paths=None, api=None, sleep=time.sleep):
    paths = paths or CameraPaths()
    api = api or CameraAPI(read_password(paths.password))
    # let any running command finish first
    sleep(constants.REBOOT_DELAY)
    try:
        api.restart()
    except CameraAPIError as e:
        logger.warning(f"restart request failed: {e}")

    # a successful reboot never gets here
    sleep(60)
    logger.error("REBOOT FAILED - INSTALL MIGHT NOT BE COMPLETE!")
    return constants.EXIT_FAILED


ACTIONS = ("install", "upload", "validate", "ip-table", "check-firmware", "reboot")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="phenocam_pit.camera", description="PhenoCam routines run on the camera"
    )
    parser.add_argument("action", choices=ACTIONS)
    parser.add_argument("fixed", nargs="?", default="FALSE",
                        help="install only: TRUE fixes the upload schedule (no random offset)")
    args = parser.parse_args(argv)

    os.environ["PATH"] = constants.CAMERA_PATH + os.pathsep + os.environ.get("PATH", "")
    paths = CameraPaths()
    setup_logging(paths.install_log if args.action == "install" else None)

    try:
        if args.action == "install":
            return install(fixed=args.fixed.lower() == "true", paths=paths)
        if args.action == "upload":
            return upload(paths=paths)
        if args.action == "validate":
            return validate(paths=paths)
        if args.action == "ip-table":
            return ip_table(paths=paths)
        if args.action == "check-firmware":
            return check_firmware(paths=paths)
        return reboot(paths=paths)
    except PITError as e:
        logger.error(f"WARNING: {e}")
        return constants.EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
