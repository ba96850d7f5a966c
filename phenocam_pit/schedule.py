# Upload schedule generation.
#
# The upload cron job fires every `interval` minutes between the start and
# end hour. Each install draws a random minute offset so cameras sharing a
# network do not all upload at the same moment; a fixed schedule uses 0.

import random
from dataclasses import dataclass

from . import constants

UPLOAD_COMMAND = constants.CAMERA_COMMAND + " upload"
IP_TABLE_COMMAND = constants.CAMERA_COMMAND + " ip-table"
REBOOT_COMMAND = constants.CAMERA_COMMAND + " reboot"


def repetitions(interval):
    return 59 // interval


def draw_jitter(interval, fixed=False, rng=None):
    """Random offset in [0, interval) that keeps every slot within the hour."""
    if fixed:
        return 0
    rng = rng or random.SystemRandom()
    latest = min(interval - 1, 59 - repetitions(interval) * interval)
    return rng.randint(0, latest)


def cron_minutes(interval, jitter):
    minutes = []
    for k in range(repetitions(interval) + 1):
        minute = k * interval + jitter
        if minute <= 59:
            minutes.append(minute)
    return minutes


def minute_field(minutes):
    return ",".join(str(m) for m in minutes)


@dataclass
class Schedule:
    minutes: list
    jitter: int
    admin: str
    root: str

    @property
    def minute_field(self):
        return minute_field(self.minutes)


def build_schedule(settings, fixed=False, rng=None):
    jitter = draw_jitter(settings.interval, fixed=fixed, rng=rng)
    minutes = cron_minutes(settings.interval, jitter)
    admin = (
        f"{minute_field(minutes)} {settings.start}-{settings.end} * * * {UPLOAD_COMMAND}\n"
        f"59 11 * * * {IP_TABLE_COMMAND}\n"
    )
    root = f"59 23 * * * {REBOOT_COMMAND}\n"
    return Schedule(minutes=minutes, jitter=jitter, admin=admin, root=root)


def write_schedule(schedule, directory=constants.SCHEDULE_DIR):
    with open(f"{directory}/admin", "w") as f:
        f.write(schedule.admin)
    with open(f"{directory}/root", "w") as f:
        f.write(schedule.root)
