# PhenoCam Installation Tool (PIT) for StarDot NetCam Live2 cameras.

__version__ = "2.0.0"
