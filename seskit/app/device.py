"""Device metadata capture and fingerprinting."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from seskit.models import ClientSignals, DeviceMetadata, utc_now

logger = logging.getLogger(__name__)

CLIENT_IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
    "cf-connecting-ip",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
)

_CHROME = re.compile(r"Chrome/([0-9.]+)")
_FIREFOX = re.compile(r"Firefox/([0-9.]+)")
_SAFARI = re.compile(r"Version/([0-9.]+)")
_EDGE = re.compile(r"Edg/([0-9.]+)")
_MAC = re.compile(r"Mac OS X ([0-9_]+)")
_ANDROID = re.compile(r"Android ([0-9.]+)")
_IOS = re.compile(r"OS ([0-9_]+)")

_WINDOWS_VERSIONS = (
    ("Windows NT 10.0", "10/11"),
    ("Windows NT 6.3", "8.1"),
    ("Windows NT 6.2", "8"),
    ("Windows NT 6.1", "7"),
)


def _group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None


def parse_user_agent(user_agent: str | None) -> dict[str, str | None]:
    """Extract browser, engine, OS and device class from a user agent string.

    Unknown parts are returned as None; ``device_type`` defaults to Desktop.
    """
    result: dict[str, str | None] = {
        "browser_name": None,
        "browser_version": None,
        "browser_engine": None,
        "operating_system": None,
        "os_version": None,
        "device_type": None,
    }
    if not user_agent:
        return result

    ua = user_agent
    if "Edg" in ua:
        result.update(browser_name="Edge", browser_version=_group(_EDGE, ua), browser_engine="Blink")
    elif "Chrome" in ua:
        result.update(
            browser_name="Chrome", browser_version=_group(_CHROME, ua), browser_engine="Blink"
        )
    elif "Firefox" in ua:
        result.update(
            browser_name="Firefox", browser_version=_group(_FIREFOX, ua), browser_engine="Gecko"
        )
    elif "Safari" in ua:
        result.update(
            browser_name="Safari", browser_version=_group(_SAFARI, ua), browser_engine="WebKit"
        )

    # Android and iOS agents also mention Linux / Mac OS X, so test them first.
    if "Windows NT" in ua:
        result["operating_system"] = "Windows"
        for marker, version in _WINDOWS_VERSIONS:
            if marker in ua:
                result["os_version"] = version
                break
    elif "Android" in ua:
        result.update(operating_system="Android", os_version=_group(_ANDROID, ua))
    elif "iPhone" in ua or "iPad" in ua:
        version = _group(_IOS, ua)
        result.update(operating_system="iOS", os_version=version.replace("_", ".") if version else None)
    elif "Mac OS X" in ua:
        version = _group(_MAC, ua)
        result.update(
            operating_system="macOS", os_version=version.replace("_", ".") if version else None
        )
    elif "Linux" in ua:
        result["operating_system"] = "Linux"

    if "Mobile" in ua or "Android" in ua:
        result["device_type"] = "Mobile"
    elif "Tablet" in ua or "iPad" in ua:
        result["device_type"] = "Tablet"
    else:
        result["device_type"] = "Desktop"

    return result


def extract_client_ip(headers: Mapping[str, str] | None) -> str:
    """Return the client IP from proxy headers, or ``"unknown"``.

    Headers are matched case-insensitively in a fixed order of preference;
    for list-valued headers the first address wins.
    """
    if not headers:
        return "unknown"

    lowered = {key.lower(): value for key, value in headers.items()}
    for header in CLIENT_IP_HEADERS:
        value = lowered.get(header)
        if not value:
            continue
        ip = value.split(",")[0].strip()
        if header == "forwarded":
            params = [part.strip() for part in ip.split(";")]
            ip = next((p[4:].strip('"') for p in params if p.lower().startswith("for=")), "")
        if ip and ip != "unknown":
            return ip
    return "unknown"


def format_metadata_for_audit(metadata: DeviceMetadata) -> str:
    """One-line, human readable device summary for audit displays."""
    parts: list[str] = []
    if metadata.ip_address:
        parts.append(f"IP: {metadata.ip_address}")
    if metadata.browser_name and metadata.browser_version:
        parts.append(f"Browser: {metadata.browser_name} {metadata.browser_version}")
    if metadata.operating_system:
        os_version = f" {metadata.os_version}" if metadata.os_version else ""
        parts.append(f"OS: {metadata.operating_system}{os_version}")
    if metadata.device_type:
        parts.append(f"Device: {metadata.device_type}")
    if metadata.screen_resolution:
        parts.append(f"Screen: {metadata.screen_resolution}")
    if metadata.timezone:
        parts.append(f"Timezone: {metadata.timezone}")
    if metadata.geolocation:
        geo = metadata.geolocation
        parts.append(f"Location: {geo.latitude:.4f}, {geo.longitude:.4f}")
    return " | ".join(parts)


def _rolling_hash(data: str) -> int:
    # 32-bit signed ((h << 5) - h) + c over UTF-16 code units.
    encoded = data.encode("utf-16-le")
    value = 0
    for index in range(0, len(encoded), 2):
        unit = encoded[index] | (encoded[index + 1] << 8)
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


class DeviceFingerprinter:
    """Normalize client signals into :class:`DeviceMetadata` and fingerprint them."""

    STABLE_FIELDS = (
        "browser_name",
        "browser_version",
        "operating_system",
        "device_type",
        "screen_resolution",
        "timezone",
        "language",
    )

    def capture(
        self,
        signals: ClientSignals | None = None,
        *,
        headers: Mapping[str, str] | None = None,
        ip_address: str | None = None,
    ) -> DeviceMetadata:
        """Build device metadata from whatever signals are available.

        Missing signals are left unset; capture itself never fails for lack
        of data.
        """
        signals = signals or ClientSignals()
        lowered = {k.lower(): v for k, v in (headers or {}).items()}

        user_agent = signals.user_agent or lowered.get("user-agent")
        language = signals.language
        if not language and lowered.get("accept-language"):
            language = lowered["accept-language"].split(",")[0].split(";")[0].strip() or None

        if ip_address is None and headers:
            extracted = extract_client_ip(headers)
            ip_address = None if extracted == "unknown" else extracted

        screen_resolution = None
        if signals.screen_width and signals.screen_height:
            screen_resolution = f"{signals.screen_width}x{signals.screen_height}"

        fields: dict[str, Any] = dict(parse_user_agent(user_agent))
        fields.update(
            ip_address=ip_address,
            user_agent=user_agent,
            screen_resolution=screen_resolution,
            color_depth=signals.color_depth,
            pixel_density=signals.pixel_density,
            timezone=signals.timezone,
            language=language,
            languages=signals.languages,
            cookies_enabled=signals.cookies_enabled,
            do_not_track=signals.do_not_track,
            connection_type=signals.connection_type,
            geolocation=signals.geolocation,
            timestamp=utc_now(),
        )
        if signals.geolocation is None:
            logger.debug("Geolocation not available for device capture")
        return DeviceMetadata(**fields)

    def fingerprint(self, metadata: DeviceMetadata) -> str:
        """Short deterministic identifier over the stable device fields.

        Low assurance: identical stable fields always give the same value,
        but unrelated devices may collide.
        """
        values = [getattr(metadata, name) for name in self.STABLE_FIELDS]
        data = "|".join(str(value) for value in values if value)
        return format(abs(_rolling_hash(data)), "x")
