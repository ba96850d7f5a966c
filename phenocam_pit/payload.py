# Self-extracting payload handling.
#
# The camera-side routines travel as a tar archive, base64 encoded and
# appended to an installer script after a line reading __BINARY__. The
# remote end decodes it with `base64 -d | tar -x`, so the archive is plain
# (uncompressed) tar with every member under files/.

import base64
import binascii
import io
import tarfile
import textwrap
import time
from pathlib import Path

from .errors import PayloadError

MARKER = "__BINARY__"
ARCHIVE_ROOT = "files"
PACKAGE_DIR = Path(__file__).resolve().parent

# camera-side modules, the operator-only ones stay behind
CAMERA_MODULES = (
    "__init__.py",
    "constants.py",
    "errors.py",
    "settings.py",
    "schedule.py",
    "camera_api.py",
    "transport.py",
    "capture.py",
    "camera.py",
)
TEMPLATES = ("site_ip.html",)


def build_archive(files) -> bytes:
    """Pack {archive path: bytes} into a tar stream under files/."""
    stream = io.BytesIO()
    now = int(time.time())
    with tarfile.open(fileobj=stream, mode="w", format=tarfile.USTAR_FORMAT) as tar:
        for name, data in sorted(files.items()):
            info = tarfile.TarInfo(f"{ARCHIVE_ROOT}/{name}")
            info.size = len(data)
            info.mtime = now
            info.mode = 0o755 if name.endswith(".sh") else 0o644
            tar.addfile(info, io.BytesIO(data))
    return stream.getvalue()


def encode_payload(archive: bytes) -> str:
    encoded = base64.b64encode(archive).decode("ascii")
    return "\n".join(textwrap.wrap(encoded, 76)) + "\n"


def decode_payload(text: str) -> bytes:
    try:
        return base64.b64decode("".join(text.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadError(f"payload is not valid base64: {e}")


def find_marker(lines) -> int:
    """Line number (1-based) of the first payload line after the marker."""
    for number, line in enumerate(lines, start=1):
        if line.rstrip("\r\n") == MARKER:
            return number + 1
    raise PayloadError(f"no {MARKER} marker found")


def write_installer(path, header: str, payload: str):
    with open(path, "w", newline="\n") as f:
        f.write(header.rstrip("\n") + "\n")
        f.write(MARKER + "\n")
        f.write(payload)
    Path(path).chmod(0o755)


def read_payload(path) -> str:
    with open(path, "r", newline="\n") as f:
        lines = f.readlines()
    start = find_marker(lines)
    return "".join(lines[start - 1:])


def list_archive(data: bytes):
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            return tar.getnames()
    except tarfile.TarError as e:
        raise PayloadError(f"payload is not a valid tar archive: {e}")


def extract_archive(data: bytes, dest):
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            for member in tar.getmembers():
                if member.name.startswith("/") or ".." in Path(member.name).parts:
                    raise PayloadError(f"unsafe path in payload: {member.name}")
            tar.extractall(path=dest, filter="data")
            return tar.getnames()
    except tarfile.TarError as e:
        raise PayloadError(f"payload is not a valid tar archive: {e}")


def camera_bundle() -> bytes:
    """Tar archive of the camera-side package and its templates."""
    files = {}
    for module in CAMERA_MODULES:
        files[f"phenocam_pit/{module}"] = (PACKAGE_DIR / module).read_bytes()
    for template in TEMPLATES:
        files[f"phenocam_pit/templates/{template}"] = (
            PACKAGE_DIR / "templates" / template
        ).read_bytes()
    return build_archive(files)


INSTALLER_HEADER = """#!/bin/sh
# Unpacks the PIT camera routines into {scripts}.
BINLINE=$(awk '/^{marker}/ {{ print NR + 1; exit 0; }}' "$0")
cd {tmp} || exit 1
tail -n +${{BINLINE}} "$0" | base64 -d | tar -x || exit 1
mkdir -p {scripts}
cp -r {tmp}/{root}/. {scripts}/
rm -rf {tmp}/{root}
exit 0"""


def installer_header(scripts_dir, tmp_dir):
    return INSTALLER_HEADER.format(
        scripts=scripts_dir, tmp=tmp_dir, marker=MARKER, root=ARCHIVE_ROOT
    )
