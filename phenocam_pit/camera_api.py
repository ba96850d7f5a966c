# Client for the NetCam Live2 HTTP admin API (vb.htm).
#
# Every setting is a single GET with one query parameter, e.g.
# http://admin:<password>@127.0.0.1/vb.htm?brightness=128

from urllib.parse import quote

import requests

from . import constants
from .errors import AuthenticationError, CameraAPIError

IMAGE_SETTINGS = ("brightness", "contrast", "sharpness", "hue", "saturation")
LIVE_STAMP = "%a %b %d %Y %H:%M:%S"


def encode_value(value):
    # strftime placeholders in the overlay are passed through untouched
    return quote(str(value), safe="%:")


def timezone_value(offset):
    """The camera reads the GMT sign inverted: +1 is sent as GMT-1."""
    offset = str(offset)
    if offset.startswith("-"):
        return "GMT+" + offset[1:]
    return "GMT-" + offset.lstrip("+")


def overlay_text(name, offset, stamp=LIVE_STAMP, model=constants.CAMERA_MODEL):
    return f"{name} - {model} - {stamp} - GMT{offset}"


def parse_firmware(info):
    """Build number from a DeviceInfo reply such as 'NetCam-Live2-B9108 ...'."""
    try:
        build = info.split("-")[2].split(" ")[0].replace("B", "")
        return int(build)
    except (IndexError, ValueError):
        raise CameraAPIError(f"could not read firmware version from '{info.strip()}'")


class CameraAPI:
    def __init__(self, password, host=constants.CAMERA_HOST, user=constants.API_USER,
                 timeout=10, session=None):
        self.host = host
        self.auth = (user, password)
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def base_url(self):
        return f"http://{self.host}"

    def _get(self, path, query=None, auth=True, stream=False):
        url = f"{self.base_url}/{path}"
        if query:
            url += "?" + query
        request = requests.Request("GET", url, auth=self.auth if auth else None)
        prepared = self.session.prepare_request(request)
        # keep the query exactly as built, requests would re-quote the %
        prepared.url = url
        try:
            r = self.session.send(prepared, timeout=self.timeout, stream=stream)
        except requests.RequestException as e:
            raise CameraAPIError(f"GET {path} failed: {type(e).__name__}: {e}")
        if r.status_code == 401:
            raise AuthenticationError("the camera rejected the admin password")
        if r.status_code != requests.codes.ok:
            raise CameraAPIError(f"GET {path} returned status {r.status_code}")
        return r

    def set_param(self, name, value):
        return self._get("vb.htm", f"{name}={encode_value(value)}").text

    def set_timezone(self, offset):
        return self.set_param("timezone", timezone_value(offset))

    def set_overlay(self, text):
        return self.set_param("overlaytext1", text)

    def apply_image_settings(self, settings):
        for name in IMAGE_SETTINGS:
            self.set_param(name, getattr(settings, name))

    def device_info(self):
        return self._get("vb.htm", "DeviceInfo").text

    def firmware_version(self):
        return parse_firmware(self.device_info())

    def restart(self):
        return self._get("vb.htm", "ipcamrestartcmd").text

    def grab_image(self, path):
        r = self._get("image.jpg", auth=False, stream=True)
        with open(path, "wb") as f:
            for chunk in r.iter_content(chunk_size=65536):
                f.write(chunk)
        return path
