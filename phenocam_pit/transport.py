# Upload transports.
#
# sFTP is preferred and logs in with the camera key, converted from dropbear
# to OpenSSH format at install time. Anonymous FTP is the fallback when there
# is no key, the key is not (yet) accepted by a server, or an sFTP upload
# fails. One server failing never stops the uploads to the others.

import enum
import ftplib
import logging
import os
from dataclasses import dataclass, field

import paramiko

from . import constants

logger = logging.getLogger(__name__)

SFTP = "sFTP"
FTP = "FTP"


class Outcome(enum.Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


def exit_code(outcome):
    return {
        Outcome.SUCCESS: constants.EXIT_OK,
        Outcome.PARTIAL: constants.EXIT_PARTIAL,
        Outcome.FAILED: constants.EXIT_FAILED,
    }[outcome]


def remote_path(site, filename):
    return f"data/{site}/{filename}"


class SFTPTransport:
    name = SFTP

    def __init__(self, key_path=constants.SFTP_KEY_FILE, user=constants.SFTP_USER,
                 port=constants.SSH_PORT, timeout=60, client_factory=paramiko.SSHClient):
        self.key_path = key_path
        self.user = user
        self.port = port
        self.timeout = timeout
        self.client_factory = client_factory

    def available(self):
        return os.path.isfile(self.key_path)

    def _connect(self, server):
        client = self.client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                server,
                self.port,
                self.user,
                key_filename=self.key_path,
                timeout=self.timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except (paramiko.SSHException, OSError):
            client.close()
            raise
        return client

    def probe(self, server):
        """Log in and out again, nothing is transferred."""
        try:
            self._connect(server).close()
            return True
        except (paramiko.SSHException, OSError) as e:
            logger.info(f"sFTP login to {server} failed: {e}")
            return False

    def put(self, server, site, paths):
        try:
            client = self._connect(server)
        except (paramiko.SSHException, OSError) as e:
            logger.warning(f"sFTP login to {server} failed: {e}")
            return False
        try:
            sftp = client.open_sftp()
            for path in paths:
                sftp.put(path, remote_path(site, os.path.basename(path)))
            sftp.close()
            return True
        except (paramiko.SSHException, OSError) as e:
            logger.warning(f"sFTP upload to {server} failed: {e}")
            return False
        finally:
            client.close()


class FTPTransport:
    name = FTP

    def __init__(self, user=constants.FTP_USER, password=constants.FTP_PASSWORD,
                 timeout=60, ftp_factory=ftplib.FTP):
        self.user = user
        self.password = password
        self.timeout = timeout
        self.ftp_factory = ftp_factory

    def put(self, server, site, paths):
        try:
            with self.ftp_factory(server, timeout=self.timeout) as ftp:
                ftp.login(self.user, self.password)
                for path in paths:
                    with open(path, "rb") as f:
                        ftp.storbinary(f"STOR {remote_path(site, os.path.basename(path))}", f)
            return True
        except ftplib.all_errors as e:
            logger.warning(f"FTP upload to {server} failed: {e}")
            return False


@dataclass
class ServerResult:
    server: str
    transport: str
    ok: bool
    fell_back: bool = False
    error: str = ""


@dataclass
class UploadReport:
    results: list = field(default_factory=list)

    @property
    def outcome(self):
        return summarize([r.ok for r in self.results])

    def failed(self):
        return [r for r in self.results if not r.ok]


def summarize(oks):
    if oks and all(oks):
        return Outcome.SUCCESS
    if any(oks):
        return Outcome.PARTIAL
    return Outcome.FAILED


def choose_transport(server, sftp, ftp):
    if sftp is None or not sftp.available():
        logger.info("no sFTP key found, using FTP")
        return ftp
    logger.info("an sFTP key was found, checking login credentials...")
    if sftp.probe(server):
        logger.info("SUCCESS... using secure sFTP")
        return sftp
    logger.info("FAILED... falling back to FTP!")
    return ftp


def upload_to_server(server, site, paths, sftp, ftp):
    transport = choose_transport(server, sftp, ftp)
    if transport.put(server, site, paths):
        return ServerResult(server, transport.name, True)
    if transport is sftp:
        logger.warning(f"sFTP upload to {server} failed, retrying over FTP")
        if ftp.put(server, site, paths):
            return ServerResult(server, FTP, True, fell_back=True)
        return ServerResult(server, FTP, False, fell_back=True,
                            error="sFTP and FTP uploads failed")
    return ServerResult(server, transport.name, False, error=f"{transport.name} upload failed")


def upload_files(servers, site, paths, sftp=None, ftp=None):
    """Upload the same files to every server and report per server."""
    ftp = ftp or FTPTransport()
    report = UploadReport()
    for server in servers:
        logger.info(f"uploading to: {server}")
        result = upload_to_server(server, site, paths, sftp, ftp)
        if not result.ok:
            logger.warning(f"FAILED TO UPLOAD DATA to {server}: {result.error}")
        report.results.append(result)
    return report
