# Camera settings record and the on-camera file formats that carry it.
#
# settings.txt keeps one value per line. The order of FIELDS is the file
# layout, every reader and writer goes through it, and new fields are only
# ever appended so older line positions stay put.

import re
from dataclasses import asdict, dataclass

from . import constants
from .errors import SettingsError

SCHEMA_VERSION = 2

FIELDS = (
    "name",
    "offset",
    "tz",
    "start",
    "end",
    "interval",
    "red",
    "green",
    "blue",
    "brightness",
    "sharpness",
    "hue",
    "contrast",
    "saturation",
    "backlight",
    "network",
)

INT_FIELDS = {
    "start", "end", "interval", "red", "green", "blue", "brightness",
    "sharpness", "hue", "contrast", "saturation", "backlight",
}

OFFSET_PATTERN = re.compile(r"^[+-]?\d{1,2}(\.\d+)?$")


@dataclass
class CameraSettings:
    name: str
    offset: str
    network: str
    start: int = constants.DEFAULT_START
    end: int = constants.DEFAULT_END
    interval: int = constants.DEFAULT_INTERVAL
    tz: str = constants.DEFAULT_TZ
    red: int = constants.DEFAULT_COLOURS["red"]
    green: int = constants.DEFAULT_COLOURS["green"]
    blue: int = constants.DEFAULT_COLOURS["blue"]
    brightness: int = constants.DEFAULT_COLOURS["brightness"]
    sharpness: int = constants.DEFAULT_COLOURS["sharpness"]
    hue: int = constants.DEFAULT_COLOURS["hue"]
    contrast: int = constants.DEFAULT_COLOURS["contrast"]
    saturation: int = constants.DEFAULT_COLOURS["saturation"]
    backlight: int = constants.DEFAULT_COLOURS["backlight"]
    schema_version: int = SCHEMA_VERSION

    def validate(self):
        """Raise SettingsError describing the first invalid field."""
        if not self.name or re.search(r"[\s/]", self.name):
            raise SettingsError(f"invalid camera name: '{self.name}'")
        if not OFFSET_PATTERN.match(str(self.offset)):
            raise SettingsError(f"invalid UTC offset: '{self.offset}'")
        if self.network not in constants.NETWORKS:
            raise SettingsError(
                f"network option is not valid (should be one of "
                f"{', '.join(sorted(constants.NETWORKS))}): '{self.network}'"
            )
        for hour in ("start", "end"):
            if not 0 <= getattr(self, hour) <= 23:
                raise SettingsError(f"{hour} hour must be within 0-23")
        if self.start > self.end:
            raise SettingsError("start hour must not be later than end hour")
        if not 1 <= self.interval <= 59:
            raise SettingsError("interval must be within 1-59 minutes")
        for colour in constants.DEFAULT_COLOURS:
            if not 0 <= getattr(self, colour) <= 255:
                raise SettingsError(f"{colour} must be within 0-255")
        return self

    @property
    def server(self):
        return constants.NETWORKS[self.network]

    def as_dict(self):
        return asdict(self)

    def colours(self):
        return {key: getattr(self, key) for key in constants.DEFAULT_COLOURS}

    def to_text(self):
        lines = [str(getattr(self, field)) for field in FIELDS]
        lines.append(str(self.schema_version))
        return "\n".join(lines) + "\n"

    @classmethod
    def from_text(cls, text):
        lines = text.splitlines()
        if len(lines) < len(FIELDS):
            raise SettingsError(
                f"settings file has {len(lines)} lines, expected {len(FIELDS)}"
            )

        values = {}
        for field, raw in zip(FIELDS, lines):
            raw = raw.strip()
            if field in INT_FIELDS:
                try:
                    values[field] = int(raw)
                except ValueError:
                    raise SettingsError(f"{field} is not a number: '{raw}'")
            else:
                values[field] = raw

        version = 1
        if len(lines) > len(FIELDS) and lines[len(FIELDS)].strip():
            try:
                version = int(lines[len(FIELDS)])
            except ValueError:
                raise SettingsError(f"bad schema version: '{lines[len(FIELDS)]}'")
        values["schema_version"] = version
        return cls(**values)


def read_settings(path=constants.SETTINGS_FILE):
    try:
        with open(path, "r") as f:
            return CameraSettings.from_text(f.read())
    except FileNotFoundError:
        raise SettingsError(f"settings file missing: {path}")


def write_settings(settings, path=constants.SETTINGS_FILE):
    with open(path, "w") as f:
        f.write(settings.to_text())


def password_text(password):
    if not password or "\n" in password:
        raise SettingsError("password must be a single non-empty line")
    return password + "\n"


def read_password(path=constants.PASSWORD_FILE):
    try:
        with open(path, "r") as f:
            return f.readline().rstrip("\n")
    except FileNotFoundError:
        raise SettingsError(f"password file missing: {path}")


def servers_text(servers):
    return "".join(f"{server}\n" for server in servers)


def parse_servers(text):
    return [line.strip() for line in text.splitlines() if line.strip()]


def read_servers(path=constants.SERVER_FILE):
    try:
        with open(path, "r") as f:
            return parse_servers(f.read())
    except FileNotFoundError:
        return []


def read_flag(path=constants.UPDATE_FILE):
    """True when the install flag file reads TRUE (case-insensitive)."""
    try:
        with open(path, "r") as f:
            return f.read().strip().upper() == "TRUE"
    except FileNotFoundError:
        return False


def write_flag(value, path=constants.UPDATE_FILE):
    with open(path, "w") as f:
        f.write(("TRUE" if value else "FALSE") + "\n")
