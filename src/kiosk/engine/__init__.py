from .base import BLANK_URL, ControlChannel, EngineDriver, EnginePage, LaunchOptions
from .chromium import CdpControlChannel, PatchrightDriver, PatchrightPage

__all__ = [
    "BLANK_URL",
    "ControlChannel",
    "EngineDriver",
    "EnginePage",
    "LaunchOptions",
    "CdpControlChannel",
    "PatchrightDriver",
    "PatchrightPage",
]
