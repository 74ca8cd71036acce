from __future__ import annotations


class BacklightdError(Exception):
    """Base class for every error raised by the daemon."""


class SamplerError(BacklightdError):
    pass


class DeviceUnavailable(SamplerError):
    pass


class CaptureFailed(SamplerError):
    pass


class CalibrationError(BacklightdError):
    pass


class InsufficientContrast(CalibrationError):
    def __init__(self, luma_min: float, luma_max: float, required: float) -> None:
        super().__init__(
            f"Observed luma range {luma_min:.3f}..{luma_max:.3f} is narrower than {required:.3f}; "
            "vary the lighting more during calibration"
        )
        self.luma_min = luma_min
        self.luma_max = luma_max
        self.required = required


class ActuatorUnreadable(CalibrationError):
    pass


class CalibrationInterrupted(CalibrationError):
    """Stop was requested before the profile was saved."""


class ActuatorWriteFailed(BacklightdError):
    pass


class ActuatorPermissionDenied(ActuatorWriteFailed):
    """Writing the backlight control file is not permitted for this user."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Permission denied writing {path}. Add a udev rule granting the 'video' group "
            "write access to the backlight and add your user to that group, or run as root."
        )
        self.path = path


class ConfigParseError(BacklightdError):
    pass
