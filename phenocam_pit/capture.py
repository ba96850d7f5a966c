# VIS / NIR capture and upload cycle.
#
# For each state the IR filter is switched, the exposure is given time to
# settle, a frame is grabbed and paired with a .meta file, and both are
# pushed to every configured server. The overlay header is frozen to the
# capture time during the cycle and the live header restored afterwards.

import logging
import os
import re
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime

import pytz

from . import constants
from .camera_api import overlay_text
from .errors import CameraAPIError, PITError
from .transport import Outcome, UploadReport, upload_files

logger = logging.getLogger(__name__)

VIS = 0
NIR = 1
STATES = (VIS, NIR)
STATE_NAMES = {VIS: "VIS", NIR: "NIR"}

OVERLAY_STAMP = "%a %b %d %Y %H:%M:%S"
FILE_STAMP = "%Y_%m_%d_%H%M%S"


def local_zone(offset):
    """Fixed offset zone for a UTC offset string such as '+1' or '-5.5'."""
    minutes = int(round(float(offset) * 60))
    return pytz.FixedOffset(minutes)


def file_names(site, stamp, state):
    prefix = f"{site}_IR" if state == NIR else site
    return f"{prefix}_{stamp}.jpg", f"{prefix}_{stamp}.meta"


def parse_ifconfig(text):
    mac = re.search(r"HWaddr\s+([0-9A-Fa-f:]{17})", text)
    ip = re.search(r"inet addr:(\S+)", text) or re.search(r"inet\s+(\d+\.\d+\.\d+\.\d+)", text)
    return (
        ip.group(1) if ip else "",
        mac.group(1).replace(":", "") if mac else "",
    )


def command_output(argv):
    try:
        return subprocess.run(argv, capture_output=True, text=True, timeout=30).stdout
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"{argv[0]} failed: {e}")
        return ""


def network_identity(run=command_output):
    return parse_ifconfig(run(["ifconfig", "eth0"]))


def read_exposure(run=command_output):
    fields = run([constants.GET_EXP]).split(" ")
    return fields[3].strip() if len(fields) > 3 else ""


def sd_card_mounted(mounts="/proc/mounts"):
    try:
        with open(mounts, "r") as f:
            return any("mmc" in line.split(" ")[0] for line in f if line.strip())
    except OSError:
        return False


def read_time_zone(path=constants.TZ_FILE):
    try:
        with open(path, "r") as f:
            return f.read().strip()
    except OSError:
        return ""


def base_metadata(settings, ip_addr, mac_addr, time_zone, overlay):
    lines = [
        f"model={constants.CAMERA_MODEL}",
        f"network={settings.network}",
        f"ip_addr={ip_addr}",
        f"mac_addr={mac_addr}",
        f"time_zone={time_zone}",
        f"overlay_text={overlay}",
    ]
    for key in ("red", "green", "blue", "brightness", "contrast", "hue",
                "sharpness", "saturation"):
        lines.append(f"{key}={getattr(settings, key)}")
    lines.append(f"backlight={settings.backlight}")
    return "\n".join(lines) + "\n"


def image_metadata(base, exposure, state, datetime_original):
    return (
        base
        + f"exposure={exposure}\n"
        + f"ir_enable={state}\n"
        + f'datetime_original="{datetime_original}"\n'
    )


@dataclass
class CycleReport:
    states: dict = field(default_factory=dict)
    errors: list = field(default_factory=list)

    @property
    def outcome(self):
        if not self.states:
            return Outcome.FAILED
        outcomes = [report.outcome for report in self.states.values()]
        if all(o == Outcome.SUCCESS for o in outcomes):
            return Outcome.SUCCESS
        if all(o == Outcome.FAILED for o in outcomes):
            return Outcome.FAILED
        return Outcome.PARTIAL


class CaptureCycle:
    def __init__(self, settings, servers, api, sftp=None, ftp=None,
                 workdir=constants.TMP_DIR, backup_dir=constants.SD_BACKUP_DIR,
                 delay=constants.SETTLE_DELAY, run=command_output,
                 set_ir=None, sleep=time.sleep, now=None, sd_card=sd_card_mounted,
                 image_log=constants.IMAGE_LOG):
        self.settings = settings
        self.servers = servers
        self.api = api
        self.sftp = sftp
        self.ftp = ftp
        self.workdir = workdir
        self.backup_dir = backup_dir
        self.delay = delay
        self.run = run
        self.set_ir = set_ir or self._set_ir
        self.sleep = sleep
        self.zone = local_zone(settings.offset)
        self.now = now or (lambda: datetime.now(self.zone))
        self.sd_card = sd_card
        self.image_log = image_log

    def _set_ir(self, state):
        subprocess.run([constants.SET_IR, str(state)],
                       stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)

    def _live_overlay(self):
        return overlay_text(self.settings.name, self.settings.offset)

    def paths(self, state, stamp):
        return [os.path.join(self.workdir, name)
                for name in file_names(self.settings.name, stamp, state)]

    def capture(self, state, image, metafile, base):
        self.set_ir(state)
        self.sleep(self.delay)
        self.api.grab_image(image)
        taken = self.now().isoformat(timespec="seconds")
        exposure = read_exposure(self.run)

        with open(metafile, "w") as f:
            f.write(image_metadata(base, exposure, state, taken))
        return image, metafile

    def backup(self, paths):
        os.makedirs(self.backup_dir, exist_ok=True)
        for path in paths:
            shutil.copy(path, os.path.join(self.backup_dir, os.path.basename(path)))

    def run_cycle(self):
        report = CycleReport()
        started = self.now()
        date = started.strftime(OVERLAY_STAMP)
        stamp = started.strftime(FILE_STAMP)

        ip_addr, mac_addr = network_identity(self.run)
        sd_card = self.sd_card()
        fixed_overlay = overlay_text(self.settings.name, self.settings.offset, stamp=date)
        try:
            self.api.set_overlay(fixed_overlay)
        except CameraAPIError as e:
            logger.warning(f"could not set the overlay: {e}")
            report.errors.append(str(e))

        base = base_metadata(self.settings, ip_addr, mac_addr, read_time_zone(), fixed_overlay)
        metadata_file = os.path.join(self.workdir, os.path.basename(constants.METADATA_FILE))
        with open(metadata_file, "w") as f:
            f.write(base)

        try:
            for state in STATES:
                name = STATE_NAMES[state]
                files = self.paths(state, stamp)
                try:
                    self.capture(state, *files, base)
                    logger.info(f"uploading ({name}): {', '.join(os.path.basename(p) for p in files)}")
                    report.states[name] = upload_files(
                        self.servers, self.settings.name, files, sftp=self.sftp, ftp=self.ftp
                    )
                    if sd_card:
                        self.backup(files)
                except (PITError, OSError) as e:
                    logger.warning(f"{name} capture failed: {e}")
                    report.errors.append(f"{name}: {e}")
                    report.states[name] = UploadReport()
                finally:
                    for path in files:
                        if os.path.exists(path):
                            os.remove(path)
        finally:
            self.set_ir(VIS)
            try:
                self.api.set_overlay(self._live_overlay())
            except CameraAPIError as e:
                logger.warning(f"could not restore the overlay: {e}")
                report.errors.append(str(e))
            if os.path.exists(metadata_file):
                os.remove(metadata_file)

        self.log_upload(date)
        return report

    def log_upload(self, date):
        try:
            with open(self.image_log, "a") as f:
                f.write(f"last uploads at:\n{date}\n")
        except OSError as e:
            logger.warning(f"could not write {self.image_log}: {e}")

