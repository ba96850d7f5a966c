# PhenoCam Installation Tool (PIT) for StarDot NetCam Live2 cameras.
#
# Logs into the camera over SSH, writes the PhenoCam settings to the
# camera's configuration partition, ships the camera-side routines and
# reboots the camera so userboot.sh picks everything up. The same login is
# used to trigger uploads, validate sFTP logins, retrieve the sFTP public
# key or purge all settings.

import argparse
import getpass
import sys

from . import __version__, constants
from .config import colour_overrides, load_cfg, servers_for, ssh_login
from .errors import FirmwareError, PITError, RemoteCommandError, SettingsError
from .payload import (
    camera_bundle, encode_payload, installer_header, read_payload, write_installer,
)
from .remote import CameraSession, shell
from .settings import CameraSettings, password_text, servers_text

PUBLIC_KEY_FILE = "phenocam_key.pub"
KEY_PREFIXES = ("ecdsa-sha2", "ssh-rsa")

PURGE_TARGETS = (
    constants.SETTINGS_FILE,
    constants.PASSWORD_FILE,
    constants.KEY_FILE,
    constants.UPDATE_FILE,
    constants.SCRIPTS_DIR,
)


def banner():
    print("")
    print(constants.BANNER_RULE)
    print("")
    print(f" Phenocam Installation Tool (PIT) V{__version__} for NetCam Live2 cameras")
    print("")
    print(" -----------------------------------------------------------")
    print("")


def closing():
    print("")
    print(constants.BANNER_RULE)


def warn(message):
    print(f" WARNING: {message}")


def camera_argv(action, *args):
    return ["env", f"PYTHONPATH={constants.SCRIPTS_DIR}", "python3", "-m",
            "phenocam_pit.camera", action, *args]


def is_true(value):
    return str(value).strip().lower() == "true"


def build_parser():
    parser = argparse.ArgumentParser(
        prog="pit",
        description="Installs the PhenoCam configuration on a StarDot NetCam Live2 camera.",
    )
    parser.add_argument("-i", dest="ip", help="camera ip address")
    parser.add_argument("-p", dest="password", help="camera (admin) password")
    parser.add_argument("-n", dest="name", help="camera name")
    parser.add_argument("-o", dest="offset", help="time offset from UTC/GMT, e.g. +1 or -5")
    parser.add_argument("-s", dest="start", type=int, default=None, help="start time 0-23")
    parser.add_argument("-e", dest="end", type=int, default=None, help="end time 0-23")
    parser.add_argument("-m", dest="interval", type=int, default=None, help="interval minutes")
    parser.add_argument("-f", dest="fixed", default="FALSE",
                        help="fix a non-random interval, TRUE or FALSE")
    parser.add_argument("-k", dest="key", default="TRUE",
                        help="generate an sFTP key pair when missing, TRUE or FALSE")
    parser.add_argument("-d", dest="network", help="network to use, either 'phenocam' or 'icos'")
    parser.add_argument("-u", dest="upload", action="store_true", help="upload images")
    parser.add_argument("-v", dest="validate", action="store_true",
                        help="validate login credentials for sFTP transfers")
    parser.add_argument("-r", dest="retrieve", action="store_true", help="retrieve the login key")
    parser.add_argument("-x", dest="purge", action="store_true",
                        help="purge all previous settings and keys")
    parser.add_argument("--config", help="YAML file with ssh login, servers and colour defaults")
    parser.add_argument("--port", type=int, default=None, help="SSH port of the camera (default 22)")
    parser.add_argument("--payload", help="self-extracting installer to take the payload from")
    parser.add_argument("--write-installer", metavar="PATH",
                        help="write a self-extracting installer of the camera routines and exit")
    return parser


def open_session(args, cfg):
    user, port = ssh_login(cfg)
    port = args.port or port
    password = args.password or getpass.getpass(f" {user}@{args.ip}'s password: ")
    print(f" Connecting to {user}@{args.ip}...")
    return CameraSession(args.ip, user=user, password=password, port=port)


def relay(result):
    if result.stdout:
        print(result.stdout.rstrip("\n"))
    if result.stderr:
        print(result.stderr.rstrip("\n"))


def settings_from_args(args, cfg):
    missing = [flag for flag, value in (("-p", args.password), ("-n", args.name),
                                        ("-o", args.offset), ("-d", args.network))
               if not value]
    if missing:
        raise SettingsError(f"missing required arguments: {' '.join(missing)}")

    values = {}
    for field, default, label in (("start", constants.DEFAULT_START, "start time (24h format)"),
                                  ("end", constants.DEFAULT_END, "end time (24h format)"),
                                  ("interval", constants.DEFAULT_INTERVAL, "interval (in minutes)")):
        value = getattr(args, field)
        if value is None:
            print(f" NOTE: No {label} provided, using the default ({default})")
            value = default
        values[field] = value

    settings = CameraSettings(
        name=args.name,
        offset=args.offset,
        network=args.network,
        **values,
        **colour_overrides(cfg),
    )
    return settings.validate()


def upload(args, cfg):
    print(" Trying to upload image to the server")
    print("")
    with open_session(args, cfg) as session:
        result = session.run(camera_argv("upload"))
    relay(result)
    if not result.ok:
        warn("Image upload failed, check your network connection and settings!")
    closing()
    return result.exit_status


def validate(args, cfg):
    print(" Trying to validate sFTP login")
    print("")
    with open_session(args, cfg) as session:
        result = session.run(camera_argv("validate"))
    relay(result)
    print("")
    print("[if no warnings are given your logins were successful]")
    closing()
    return result.exit_status


def extract_public_key(text):
    for line in text.splitlines():
        if line.startswith(KEY_PREFIXES):
            return line.strip()
    return None


def retrieve(args, cfg, output=PUBLIC_KEY_FILE):
    print(" Retrieving the public key login credentials")
    print("")
    with open_session(args, cfg) as session:
        result = session.run(shell(
            'if [ -f "$1" ]; then dropbearkey -y -f "$1"; else exit 1; fi',
            constants.KEY_FILE,
        ))
        network = None
        if session.exists(constants.SETTINGS_FILE):
            try:
                network = CameraSettings.from_text(
                    session.read_file(constants.SETTINGS_FILE)).network
            except SettingsError:
                # unreadable settings, list every network contact
                network = None

    key = extract_public_key(result.stdout) if result.ok else None
    if key is None:
        warn("No login key (pair) 'phenocam_key' found...")
        print(" (please run the installation routine)")
        closing()
        return constants.EXIT_FAILED

    with open(output, "w") as f:
        f.write(key + "\n")

    contacts = [constants.NETWORK_CONTACTS[network]] if network in constants.NETWORK_CONTACTS \
        else sorted(set(constants.NETWORK_CONTACTS.values()))
    print(f" The public key was written to the '{output}' file")
    print(" in your current working directory!")
    print("")
    print(f" Forward this file to {' or '.join(contacts)} to finalize your")
    print(" sFTP installation.")
    closing()
    return constants.EXIT_OK


def confirm(prompt="Do you wish to perform this action? "):
    answer = input(prompt).strip().lower()
    return answer in ("y", "yes")


def purge(args, cfg):
    print(" Purging all previous settings and login credentials")
    print("")
    if not confirm():
        print("You answered no, exiting")
        closing()
        return constants.EXIT_OK

    print("Purging the system settings...")
    with open_session(args, cfg) as session:
        session.remove(*PURGE_TARGETS)
    print("")
    print(" Done, cleaned the camera settings!")
    closing()
    return constants.EXIT_OK


def userboot_script(fixed):
    return (
        "#!/bin/sh\n"
        "# PhenoCam routines, need python3 with paramiko, requests and pytz\n"
        f"{constants.CAMERA_COMMAND} install {'TRUE' if fixed else 'FALSE'}\n"
        f"{constants.CAMERA_COMMAND} upload\n"
    )


def install_summary(settings, servers, fixed, ip, key=True):
    contact = constants.NETWORK_CONTACTS[settings.network]
    lines = [
        "",
        " Successfully uploaded install instructions.",
        " The camera configuration will take effect on reboot.",
        "",
        " The following options have been set:",
        " ------------------------------------",
        "",
        f" Sitename: {settings.name} | Timezone: GMT{settings.offset}",
        f" Upload start - end: {settings.start} - {settings.end} (h)",
        f" Upload interval: every {settings.interval} (min)",
        f" Fixed (non random) interval: {'TRUE' if fixed else 'FALSE'}",
        "",
        " And the following colour settings:",
        " ----------------------------------",
        "",
        f" Gain values (R G B): {settings.red} {settings.green} {settings.blue}",
        f" Brightness: {settings.brightness} | Sharpness: {settings.sharpness}",
        f" Hue: {settings.hue} | Contrast: {settings.contrast}",
        f" Saturation: {settings.saturation} | Backlight: {settings.backlight}",
        "",
        " NOTE:",
    ]
    if key:
        lines += [
            " A key (pair) exists or was generated, please run:",
            f" pit -i {ip} -r",
            " to display/retrieve the current login key",
            f" and send this key to {contact} to complete the install.",
        ]
    else:
        lines += [
            " No login key (pair) was generated, images will be uploaded over FTP.",
            " Rerun the install with -k TRUE to enable sFTP uploads.",
        ]
    lines += [
        " The camera routines need python3 with paramiko, requests and pytz",
        " on the camera (or the host running them).",
        "",
        constants.BANNER_RULE,
        "",
        " --> SUCCESSFUL UPLOAD OF THE INSTALLATION SCRIPT",
        " --> THE CAMERA WILL REBOOT TO COMPLETE THE INSTALL",
        f" --> THIS CONFIGURATION USES THE - {settings.network} - NETWORK",
        f" --> USING THE - {', '.join(servers)} - SERVER",
        "",
        " [NOTE: the full install will take several reboot cycles (~5 min !!),",
        " please wait before logging in or triggering the script again. The",
        f" current SSH connection will be closed for reboot in {constants.REBOOT_DELAY} sec.]",
    ]
    return "\n".join(lines)


def install(args, cfg):
    settings = settings_from_args(args, cfg)
    servers = servers_for(settings.network, cfg)
    fixed = is_true(args.fixed)
    if not fixed and str(args.fixed).strip().upper() != "FALSE":
        raise SettingsError(f"-f should be TRUE or FALSE, got '{args.fixed}'")
    payload = read_payload(args.payload) if args.payload else encode_payload(camera_bundle())

    print("")
    print(" Please login to execute the installation script.")
    print("")
    with open_session(args, cfg) as session:
        session.write_file(constants.UPDATE_FILE, "TRUE\n")
        session.write_file(constants.SETTINGS_FILE, settings.to_text())
        session.write_file(constants.PASSWORD_FILE, password_text(args.password), mode=0o600)
        session.write_file(constants.SERVER_FILE, servers_text(servers), mode=0o666)

        if is_true(args.key):
            session.check(shell(
                'if [ ! -f "$1" ]; then dropbearkey -t ecdsa -s 521 -f "$1" >/dev/null; fi',
                constants.KEY_FILE,
            ))

        session.check(shell('cd "$1" && base64 -d | tar -x', constants.TMP_DIR), stdin=payload)
        session.check(shell(
            'mkdir -p "$1" && cp -r "$2"/files/. "$1"/ && rm -rf "$2"/files',
            constants.SCRIPTS_DIR, constants.TMP_DIR,
        ))
        key = session.run(shell(
            'if [ -f "$1" ]; then dropbearconvert dropbear openssh "$1" "$2" >/dev/null 2>&1; '
            'else exit 1; fi',
            constants.KEY_FILE, constants.SFTP_KEY_FILE,
        )).ok
        if not key:
            print(" NOTE: no sFTP key available, uploads will use FTP")

        firmware = session.run(camera_argv("check-firmware"))
        if not firmware.ok:
            relay(firmware)
            raise FirmwareError("the camera firmware check failed, install aborted")

        session.write_file(constants.USERBOOT_FILE, userboot_script(fixed), mode=0o755)
        print(install_summary(settings, servers, fixed, args.ip, key=key))
        print("")
        print(constants.BANNER_RULE)

        # detach so the restart does not hang this session
        session.check(shell('nohup "$@" >/dev/null 2>&1 &', *camera_argv("reboot")))
    return constants.EXIT_OK


def write_bundle(path):
    header = installer_header(constants.SCRIPTS_DIR, constants.TMP_DIR)
    write_installer(path, header, encode_payload(camera_bundle()))
    print(f" Wrote the self-extracting installer to '{path}'")
    closing()
    return constants.EXIT_OK


def dispatch(args, cfg):
    if args.upload:
        return upload(args, cfg)
    if args.validate:
        return validate(args, cfg)
    if args.retrieve:
        return retrieve(args, cfg)
    if args.purge:
        return purge(args, cfg)
    return install(args, cfg)


def main(argv=None):
    args = build_parser().parse_args(argv)
    banner()

    if args.write_installer:
        return write_bundle(args.write_installer)

    if not args.ip or args.ip.startswith("-"):
        warn("No IP address provided")
        closing()
        return constants.EXIT_USAGE

    try:
        cfg = load_cfg(args.config)
        return dispatch(args, cfg)
    except SettingsError as e:
        warn(str(e))
        print("")
        print(" NOTE: If no confirmation of a successful upload is provided,")
        print(" or warnings are shown, check all script parameters.")
        closing()
        return constants.EXIT_USAGE
    except RemoteCommandError as e:
        warn(f"a command on the camera failed: {e}")
        closing()
        return constants.EXIT_FAILED
    except PITError as e:
        warn(str(e))
        closing()
        return constants.EXIT_FAILED
    except KeyboardInterrupt:
        print("")
        return constants.EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
