"""Classify the device descriptor the UI layer supplies at journey start."""

from __future__ import annotations

from hubsight.models.flows import DeviceInfo

# Order matters: Edge and Chrome both advertise "Chrome", Android advertises "Linux".
_BROWSER_MARKERS: tuple[tuple[str, str], ...] = (
    ("Edg", "Edge"),
    ("Firefox", "Firefox"),
    ("Chrome", "Chrome"),
    ("Safari", "Safari"),
)
_OS_MARKERS: tuple[tuple[str, str], ...] = (
    ("Android", "Android"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Windows", "Windows"),
    ("Mac OS", "macOS"),
    ("Linux", "Linux"),
)


def _match(user_agent: str, markers: tuple[tuple[str, str], ...]) -> str:
    for marker, name in markers:
        if marker in user_agent:
            return name
    return "Unknown"


def describe_device(
    user_agent: str = "",
    viewport_width: int = 0,
    viewport_height: int = 0,
    *,
    mobile_viewport_width: int = 768,
) -> DeviceInfo:
    return DeviceInfo(
        user_agent=user_agent,
        viewport_width=viewport_width,
        viewport_height=viewport_height,
        is_mobile=0 < viewport_width < mobile_viewport_width,
        browser=_match(user_agent, _BROWSER_MARKERS),
        os=_match(user_agent, _OS_MARKERS),
    )


__all__ = ["describe_device"]
