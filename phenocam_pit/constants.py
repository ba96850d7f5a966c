# Fixed locations, defaults and network endpoints shared by the operator
# tool and the camera-side routines.

# persistent configuration partition on the camera
CFG_DIR = "/mnt/cfg1"
SETTINGS_FILE = CFG_DIR + "/settings.txt"
PASSWORD_FILE = CFG_DIR + "/.password"
SERVER_FILE = CFG_DIR + "/server.txt"
UPDATE_FILE = CFG_DIR + "/update.txt"
KEY_FILE = CFG_DIR + "/phenocam_key"
USERBOOT_FILE = CFG_DIR + "/userboot.sh"
SCRIPTS_DIR = CFG_DIR + "/scripts"
# OpenSSH copy of KEY_FILE for the sFTP uploads, purged with the scripts
SFTP_KEY_FILE = SCRIPTS_DIR + "/phenocam_key.pem"
SCHEDULE_DIR = CFG_DIR + "/schedule"

# RAM backed scratch space, nothing here survives a reboot
TMP_DIR = "/var/tmp"
METADATA_FILE = TMP_DIR + "/metadata.txt"
INSTALL_LOG = TMP_DIR + "/install_log.txt"
IMAGE_LOG = TMP_DIR + "/image_log.txt"
TZ_FILE = "/var/TZ"

SD_BACKUP_DIR = "/mnt/mmc/phenocam_backup"

# camera tooling
SET_IR = "/usr/sbin/set_ir.sh"
SET_RGB = "/usr/sbin/set_rgb.sh"
GET_EXP = "/usr/sbin/get_exp"
CAMERA_PATH = "/usr/local/bin:/usr/local/sbin:/usr/bin:/usr/sbin:/bin:/sbin"

CAMERA_MODEL = "NetCam Live2"
CAMERA_HOST = "127.0.0.1"
SSH_USER = "admin"
SSH_PORT = 22
API_USER = "admin"

# upload destinations
SFTP_USER = "phenosftp"
FTP_USER = "anonymous"
FTP_PASSWORD = "anonymous"
NETWORKS = {
    "phenocam": "phenocam.nau.edu",
    "icos": "icos01.uantwerpen.be",
}
NETWORK_CONTACTS = {
    "phenocam": "phenocam@nau.edu",
    "icos": "phenocam@uantwerpen.be",
}
DEFAULT_SERVER = NETWORKS["phenocam"]

# scheduling defaults
DEFAULT_START = 9
DEFAULT_END = 22
DEFAULT_INTERVAL = 30
DEFAULT_TZ = "GMT"

# colour settings written with every install
DEFAULT_COLOURS = {
    "red": 220,
    "green": 125,
    "blue": 220,
    "brightness": 128,
    "sharpness": 128,
    "hue": 128,
    "contrast": 128,
    "saturation": 100,
    "backlight": 0,
}

MIN_FIRMWARE = 9108

# seconds
SETTLE_DELAY = 30
REBOOT_DELAY = 30
BOOT_DELAY = 30

BANNER_RULE = "=" * 68

# how cron and userboot.sh invoke the camera-side routines
CAMERA_COMMAND = f"PYTHONPATH={SCRIPTS_DIR} python3 -m phenocam_pit.camera"

# process exit codes
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_PARTIAL = 3
