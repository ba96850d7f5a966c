# tests/test_camera.py
import os
import tempfile
import unittest
from unittest.mock import MagicMock, call

from phenocam_pit import camera, constants
from phenocam_pit.camera import CameraPaths
from phenocam_pit.constants import EXIT_FAILED, EXIT_OK, EXIT_PARTIAL
from phenocam_pit.errors import AuthenticationError
from phenocam_pit.schedule import UPLOAD_COMMAND
from phenocam_pit.settings import CameraSettings, read_flag, write_flag, write_settings
from phenocam_pit.transport import FTP

IFCONFIG = "eth0 Link encap:Ethernet HWaddr 00:30:F4:D2:10:8A\n inet addr:10.0.0.5 Bcast:10.0.0.255\n"


class CameraTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        cfg = os.path.join(self.tmp.name, "cfg1")
        tmp_dir = os.path.join(self.tmp.name, "tmp")
        os.makedirs(cfg)
        os.makedirs(tmp_dir)
        self.paths = CameraPaths(cfg_dir=cfg, tmp_dir=tmp_dir)
        self.settings = CameraSettings(name="mycam", offset="+1", network="phenocam",
                                       start=9, end=22, interval=30)
        self.api = MagicMock()
        self.sleep = MagicMock()

    def tearDown(self):
        self.tmp.cleanup()

    def configure(self, servers=("a.org",)):
        write_settings(self.settings, self.paths.settings)
        with open(self.paths.password, "w") as f:
            f.write("secret\n")
        with open(self.paths.servers, "w") as f:
            f.write("".join(f"{s}\n" for s in servers))


class TestInstall(CameraTestCase):

    def test_skipped_without_update_flag(self):
        code = camera.install(paths=self.paths, api=self.api, sleep=self.sleep)
        self.assertEqual(code, EXIT_OK)
        self.api.set_timezone.assert_not_called()
        # a default server is still written
        with open(self.paths.servers) as f:
            self.assertEqual(f.read(), "phenocam.nau.edu\n")

    def test_applies_settings_and_schedule(self):
        self.configure()
        write_flag(True, self.paths.update)
        rgb = MagicMock()
        reboot = MagicMock(return_value=EXIT_OK)

        code = camera.install(fixed=True, paths=self.paths, api=self.api, rgb=rgb,
                              reboot_camera=reboot, sleep=self.sleep)

        self.assertEqual(code, EXIT_OK)
        self.api.set_timezone.assert_called_once_with("+1")
        self.api.apply_image_settings.assert_called_once_with(self.settings)
        rgb.assert_called_once_with(220, 125, 220)
        reboot.assert_called_once()
        self.assertFalse(read_flag(self.paths.update))
        with open(os.path.join(self.paths.schedule, "admin")) as f:
            self.assertEqual(f.readline(), f"0,30 9-22 * * * {UPLOAD_COMMAND}\n")
        with open(os.path.join(self.paths.schedule, "root")) as f:
            self.assertTrue(f.read().startswith("59 23 * * *"))

    def test_missing_settings_aborts(self):
        write_flag(True, self.paths.update)
        code = camera.install(paths=self.paths, api=self.api, sleep=self.sleep,
                              reboot_camera=MagicMock())
        self.assertEqual(code, EXIT_FAILED)
        self.assertTrue(read_flag(self.paths.update))


class TestValidate(CameraTestCase):

    def test_no_key_nothing_to_do(self):
        sftp = MagicMock()
        sftp.available.return_value = False
        self.assertEqual(camera.validate(paths=self.paths, sftp=sftp), EXIT_OK)
        sftp.probe.assert_not_called()

    def test_reports_each_server(self):
        self.configure(servers=("a.org", "b.org"))
        sftp = MagicMock()
        sftp.available.return_value = True
        sftp.probe.side_effect = [True, False]
        self.assertEqual(camera.validate(paths=self.paths, sftp=sftp), EXIT_PARTIAL)
        self.assertEqual(sftp.probe.call_args_list, [call("a.org"), call("b.org")])
        sftp.put.assert_not_called()

    def test_default_transport_without_key(self):
        self.configure(servers=("a.org",))
        self.assertEqual(camera.validate(paths=self.paths), EXIT_OK)


class TestCameraPaths(unittest.TestCase):

    def test_defaults_match_camera_layout(self):
        paths = CameraPaths()
        self.assertEqual(paths.settings, constants.SETTINGS_FILE)
        self.assertEqual(paths.sftp_key, constants.SFTP_KEY_FILE)
        self.assertEqual(paths.schedule, constants.SCHEDULE_DIR)
        self.assertEqual(paths.install_log, constants.INSTALL_LOG)

    def test_relocated(self):
        paths = CameraPaths(cfg_dir="/tmp/cfg1", tmp_dir="/tmp/ram")
        self.assertEqual(paths.password, "/tmp/cfg1/.password")
        self.assertEqual(paths.sftp_key, "/tmp/cfg1/scripts/phenocam_key.pem")
        self.assertEqual(paths.image_log, "/tmp/ram/image_log.txt")


class TestFirmware(CameraTestCase):

    def test_supported_version(self):
        self.api.firmware_version.return_value = 9108
        self.assertEqual(camera.check_firmware(paths=self.paths, api=self.api), EXIT_OK)

    def test_old_version(self):
        self.api.firmware_version.return_value = 9000
        self.assertEqual(camera.check_firmware(paths=self.paths, api=self.api), EXIT_FAILED)

    def test_wrong_password(self):
        self.api.firmware_version.side_effect = AuthenticationError("denied")
        self.assertEqual(camera.check_firmware(paths=self.paths, api=self.api), EXIT_FAILED)


class TestIPTable(CameraTestCase):

    def test_render_site_ip(self):
        html = camera.render_site_ip("10.0.0.5", "Sat Jun 01 12:00:00 2024")
        self.assertIn("Time of Last IP Upload: Sat Jun 01 12:00:00 2024", html)
        self.assertIn('<a href="http://10.0.0.5/admin.cgi">', html)
        self.assertNotIn("SITEIP", html)

    def test_uploads_page_to_every_server(self):
        self.configure(servers=("a.org", "b.org"))
        ftp = MagicMock()
        pages = []
        ftp.put.side_effect = lambda server, site, paths: pages.append(open(paths[0]).read()) or True

        code = camera.ip_table(paths=self.paths, ftp=ftp, run=lambda argv: IFCONFIG)

        self.assertEqual(code, EXIT_OK)
        self.assertEqual(ftp.put.call_count, 2)
        self.assertTrue(ftp.put.call_args[0][2][0].endswith("mycam_ip.html"))
        self.assertIn("IP Address: 10.0.0.5", pages[0])
        self.assertFalse(os.path.exists(os.path.join(self.paths.tmp_dir, "mycam_ip.html")))


class TestUploadAndReboot(CameraTestCase):

    def test_upload_cycle(self):
        self.configure()
        self.api.grab_image.side_effect = lambda path: open(path, "wb").close()
        sftp = MagicMock()
        sftp.available.return_value = False
        ftp = MagicMock()
        ftp.name = FTP
        ftp.put.return_value = True

        code = camera.upload(paths=self.paths, api=self.api, sftp=sftp, ftp=ftp,
                             set_ir=MagicMock(), sleep=self.sleep,
                             run=lambda argv: IFCONFIG, sd_card=lambda: False)

        self.assertEqual(code, EXIT_OK)
        self.assertEqual(ftp.put.call_count, 2)
        self.assertTrue(os.path.exists(self.paths.image_log))

    def test_reboot(self):
        code = camera.reboot(paths=self.paths, api=self.api, sleep=self.sleep)
        self.api.restart.assert_called_once()
        self.assertEqual(self.sleep.call_args_list, [call(30), call(60)])
        self.assertEqual(code, EXIT_FAILED)


if __name__ == "__main__":
    unittest.main()
