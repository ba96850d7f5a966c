# SSH access to the camera.
#
# Commands are passed as argument lists and quoted one by one before they
# reach the remote shell. File contents (the camera password included)
# travel over stdin, never inside a command line.

import shlex
from dataclasses import dataclass

import paramiko

from . import constants
from .errors import ConnectionFailed, RemoteCommandError


@dataclass
class CommandResult:
    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self):
        return self.exit_status == 0


def quote_command(argv):
    if isinstance(argv, str):
        raise TypeError("commands must be passed as a list of arguments")
    return " ".join(shlex.quote(str(arg)) for arg in argv)


def shell(script, *args):
    """argv running `script` under sh -c with positional arguments $1..$n."""
    return ["sh", "-c", script, "sh", *args]


class CameraSession:
    def __init__(self, ip, user=constants.SSH_USER, password=None,
                 port=constants.SSH_PORT, key_filename=None, timeout=15):
        self.ip = ip
        self.user = user
        self.password = password
        self.port = port
        self.key_filename = key_filename
        self.timeout = timeout
        self.client = None

    def connect(self):
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                self.ip,
                self.port,
                self.user,
                self.password,
                key_filename=self.key_filename,
                timeout=self.timeout,
                look_for_keys=self.password is None,
                allow_agent=self.password is None,
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise ConnectionFailed(f"could not log in to {self.user}@{self.ip}: {e}")
        self.client = client
        return self

    def close(self):
        if self.client is not None:
            self.client.close()
            self.client = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def run(self, argv, stdin=None, timeout=None) -> CommandResult:
        command = quote_command(argv)
        try:
            chan_in, chan_out, chan_err = self.client.exec_command(command, timeout=timeout)
            if stdin is not None:
                if isinstance(stdin, str):
                    stdin = stdin.encode("utf-8")
                chan_in.write(stdin)
                chan_in.channel.shutdown_write()
            out = chan_out.read().decode("utf-8", errors="replace")
            err = chan_err.read().decode("utf-8", errors="replace")
            status = chan_out.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise ConnectionFailed(f"lost connection to {self.ip}: {e}")
        return CommandResult(status, out, err)

    def check(self, argv, stdin=None, timeout=None) -> CommandResult:
        result = self.run(argv, stdin=stdin, timeout=timeout)
        if not result.ok:
            raise RemoteCommandError(quote_command(argv), result)
        return result

    def write_file(self, path, content, mode=None):
        script = 'cat > "$1"'
        args = [path]
        if mode is not None:
            script += ' && chmod "$2" "$1"'
            args.append(f"{mode:o}")
        self.check(shell(script, *args), stdin=content)

    def read_file(self, path) -> str:
        return self.check(["cat", path]).stdout

    def exists(self, path) -> bool:
        return self.run(["test", "-e", path]).ok

    def remove(self, *paths):
        self.check(["rm", "-rf", *paths])
