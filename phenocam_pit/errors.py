# Exception types raised by the PIT library code. The command line entry
# points catch PITError and turn it into a warning banner and exit code.


class PITError(Exception):
    pass


class SettingsError(PITError):
    pass


class PayloadError(PITError):
    pass


class RemoteError(PITError):
    pass


class ConnectionFailed(RemoteError):
    pass


class RemoteCommandError(RemoteError):
    def __init__(self, command, result):
        self.command = command
        self.result = result
        detail = (result.stderr or result.stdout).strip()
        message = f"'{command}' exited with status {result.exit_status}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class CameraAPIError(PITError):
    pass


class AuthenticationError(CameraAPIError):
    pass


class FirmwareError(PITError):
    pass
