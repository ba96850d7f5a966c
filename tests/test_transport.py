# tests/test_transport.py
import os
import tempfile
import unittest
from unittest.mock import MagicMock, call

import paramiko

from phenocam_pit.constants import EXIT_FAILED, EXIT_OK, EXIT_PARTIAL
from phenocam_pit.transport import (
    FTP, SFTP, FTPTransport, Outcome, SFTPTransport, exit_code, upload_files,
)


def fake_sftp(available=True, probe=True, put=True):
    sftp = MagicMock()
    sftp.name = SFTP
    sftp.available.return_value = available
    sftp.probe.return_value = probe
    sftp.put.return_value = put
    return sftp


def fake_ftp(put=True):
    ftp = MagicMock()
    ftp.name = FTP
    if isinstance(put, list):
        ftp.put.side_effect = put
    else:
        ftp.put.return_value = put
    return ftp


class TestSFTPTransport(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.key = os.path.join(self.tmp.name, "phenocam_key.pem")
        with open(self.key, "w") as f:
            f.write("key")
        self.client = MagicMock()
        self.factory = MagicMock(return_value=self.client)
        self.transport = SFTPTransport(key_path=self.key, client_factory=self.factory)

    def test_probe_logs_in_with_key(self):
        self.assertTrue(self.transport.probe("phenocam.nau.edu"))
        args, kwargs = self.client.connect.call_args
        self.assertEqual(args, ("phenocam.nau.edu", 22, "phenosftp"))
        self.assertEqual(kwargs["key_filename"], self.key)
        self.assertFalse(kwargs["look_for_keys"])
        self.client.open_sftp.assert_not_called()
        self.client.close.assert_called_once()

    def test_put_under_site_directory(self):
        sftp = self.client.open_sftp.return_value
        self.assertTrue(self.transport.put("phenocam.nau.edu", "mycam",
                                           ["/var/tmp/mycam_1.jpg", "/var/tmp/mycam_1.meta"]))
        self.assertEqual(sftp.put.call_args_list, [
            call("/var/tmp/mycam_1.jpg", "data/mycam/mycam_1.jpg"),
            call("/var/tmp/mycam_1.meta", "data/mycam/mycam_1.meta"),
        ])
        self.client.close.assert_called_once()

    def test_failed_login(self):
        self.client.connect.side_effect = paramiko.AuthenticationException("denied")
        self.assertFalse(self.transport.probe("phenocam.nau.edu"))
        self.assertFalse(self.transport.put("phenocam.nau.edu", "mycam", ["/var/tmp/x.jpg"]))
        self.client.open_sftp.assert_not_called()
        self.assertEqual(self.client.close.call_count, 2)

    def test_failed_transfer(self):
        self.client.open_sftp.return_value.put.side_effect = OSError("no such directory")
        self.assertFalse(self.transport.put("phenocam.nau.edu", "mycam", ["/var/tmp/x.jpg"]))
        self.client.close.assert_called_once()

    def test_available_needs_key(self):
        self.assertTrue(self.transport.available())
        os.remove(self.key)
        self.assertFalse(self.transport.available())


class TestFTPTransport(unittest.TestCase):

    def test_stores_under_site_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "mycam_1.jpg")
            with open(path, "wb") as f:
                f.write(b"jpg")
            ftp = MagicMock()
            factory = MagicMock()
            factory.return_value.__enter__.return_value = ftp

            self.assertTrue(FTPTransport(ftp_factory=factory).put("phenocam.nau.edu", "mycam", [path]))
            ftp.login.assert_called_once_with("anonymous", "anonymous")
            self.assertEqual(ftp.storbinary.call_args[0][0], "STOR data/mycam/mycam_1.jpg")

    def test_connection_error_is_reported(self):
        factory = MagicMock(side_effect=OSError("unreachable"))
        self.assertFalse(FTPTransport(ftp_factory=factory).put("nowhere", "mycam", []))


class TestFallback(unittest.TestCase):

    def setUp(self):
        self.files = ["/var/tmp/mycam_1.jpg", "/var/tmp/mycam_1.meta"]

    def test_sftp_preferred(self):
        sftp, ftp = fake_sftp(), fake_ftp()
        report = upload_files(["a.org"], "mycam", self.files, sftp=sftp, ftp=ftp)
        self.assertEqual(report.results[0].transport, SFTP)
        sftp.put.assert_called_once_with("a.org", "mycam", self.files)
        ftp.put.assert_not_called()

    def test_failed_login_falls_back_to_ftp(self):
        sftp, ftp = fake_sftp(probe=False), fake_ftp()
        report = upload_files(["a.org"], "mycam", self.files, sftp=sftp, ftp=ftp)
        self.assertEqual(report.results[0].transport, FTP)
        sftp.put.assert_not_called()
        ftp.put.assert_called_once_with("a.org", "mycam", self.files)

    def test_no_key_uses_ftp_without_probe(self):
        sftp, ftp = fake_sftp(available=False), fake_ftp()
        upload_files(["a.org"], "mycam", self.files, sftp=sftp, ftp=ftp)
        sftp.probe.assert_not_called()
        ftp.put.assert_called_once()

    def test_failed_sftp_upload_retries_over_ftp(self):
        sftp, ftp = fake_sftp(put=False), fake_ftp()
        result = upload_files(["a.org"], "mycam", self.files, sftp=sftp, ftp=ftp).results[0]
        self.assertTrue(result.ok)
        self.assertTrue(result.fell_back)
        ftp.put.assert_called_once()

    def test_one_server_failing_does_not_stop_the_rest(self):
        sftp, ftp = fake_sftp(available=False), fake_ftp(put=[False, True])
        report = upload_files(["a.org", "b.org"], "mycam", self.files, sftp=sftp, ftp=ftp)
        self.assertEqual([r.ok for r in report.results], [False, True])
        self.assertEqual(report.outcome, Outcome.PARTIAL)
        self.assertEqual([r.server for r in report.failed()], ["a.org"])

    def test_outcomes_and_exit_codes(self):
        sftp = fake_sftp(available=False)
        ok = upload_files(["a.org"], "mycam", self.files, sftp=sftp, ftp=fake_ftp())
        failed = upload_files(["a.org"], "mycam", self.files, sftp=sftp, ftp=fake_ftp(put=False))
        self.assertEqual(ok.outcome, Outcome.SUCCESS)
        self.assertEqual(failed.outcome, Outcome.FAILED)
        self.assertEqual(exit_code(Outcome.SUCCESS), EXIT_OK)
        self.assertEqual(exit_code(Outcome.PARTIAL), EXIT_PARTIAL)
        self.assertEqual(exit_code(Outcome.FAILED), EXIT_FAILED)


if __name__ == "__main__":
    unittest.main()
