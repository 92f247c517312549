"""
Color space conversions.

Converts between CIE xy, RGB, HSL, Matter hue/saturation (0-254) and
color temperature. The wide gamut RGB matrix matches the one Zigbee
lights use, so xy values reported by the gateway map back to the hue the
bulb actually shows.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

# Linear wide gamut RGB -> CIE XYZ (D65)
RGB_TO_XYZ = np.array([
    [0.664511, 0.154324, 0.162028],
    [0.283881, 0.668433, 0.047685],
    [0.000088, 0.072310, 0.986039],
])
XYZ_TO_RGB = np.linalg.inv(RGB_TO_XYZ)

MATTER_SCALE = 254
XY_SCALE = 65536


@dataclass(frozen=True)
class HSL:
    """Hue in degrees, saturation and lightness in percent, all integers."""
    h: int
    s: int
    l: int


def _gamma_encode(value: np.ndarray) -> np.ndarray:
    return np.where(value <= 0.0031308, 12.92 * value, 1.055 * np.power(value, 1 / 2.4) - 0.055)


def _gamma_decode(value: np.ndarray) -> np.ndarray:
    return np.where(value > 0.04045, np.power((value + 0.055) / 1.055, 2.4), value / 12.92)


def xy_to_rgb(x: float, y: float) -> Tuple[int, int, int]:
    """
    Convert a CIE xy pair to 8 bit RGB at full brightness.

    Out of gamut components are clipped to zero and the result is scaled
    so the brightest channel is 255.
    """
    if y <= 0:
        return (0, 0, 0)
    xyz = np.array([x / y, 1.0, (1.0 - x - y) / y])
    linear = np.clip(XYZ_TO_RGB @ xyz, 0.0, None)
    peak = linear.max()
    if peak <= 0:
        return (0, 0, 0)
    rgb = _gamma_encode(linear / peak)
    r, g, b = (int(round(c)) for c in np.clip(rgb * 255, 0, 255))
    return (r, g, b)


def rgb_to_xy(r: int, g: int, b: int) -> Tuple[float, float]:
    """Convert 8 bit RGB to a CIE xy pair rounded to four decimals."""
    linear = _gamma_decode(np.array([r, g, b], dtype=float) / 255)
    X, Y, Z = RGB_TO_XYZ @ linear
    total = X + Y + Z
    if total <= 0:
        return (0.0, 0.0)
    return (round(float(X / total), 4), round(float(Y / total), 4))


def rgb_to_hsl(r: int, g: int, b: int) -> HSL:
    red, green, blue = r / 255, g / 255, b / 255
    high = max(red, green, blue)
    low = min(red, green, blue)
    lightness = (high + low) / 2
    if high == low:
        return HSL(0, 0, round(lightness * 100))

    delta = high - low
    saturation = delta / (1 - abs(2 * lightness - 1))
    if high == red:
        hue = 60 * (((green - blue) / delta) % 6)
    elif high == green:
        hue = 60 * ((blue - red) / delta + 2)
    else:
        hue = 60 * ((red - green) / delta + 4)
    return HSL(round(hue) % 360, round(saturation * 100), round(lightness * 100))


def hsl_to_rgb(h: float, s: float, l: float = 50) -> Tuple[int, int, int]:
    saturation = s / 100
    lightness = l / 100
    chroma = (1 - abs(2 * lightness - 1)) * saturation
    sector = (h % 360) / 60
    second = chroma * (1 - abs(sector % 2 - 1))
    if sector < 1:
        red, green, blue = chroma, second, 0.0
    elif sector < 2:
        red, green, blue = second, chroma, 0.0
    elif sector < 3:
        red, green, blue = 0.0, chroma, second
    elif sector < 4:
        red, green, blue = 0.0, second, chroma
    elif sector < 5:
        red, green, blue = second, 0.0, chroma
    else:
        red, green, blue = chroma, 0.0, second
    match = lightness - chroma / 2
    return tuple(int(round((c + match) * 255)) for c in (red, green, blue))


def xy_to_hsl(x: float, y: float) -> HSL:
    return rgb_to_hsl(*xy_to_rgb(x, y))


def xy_to_matter_hs(x: float, y: float) -> Tuple[int, int]:
    """Convert a CIE xy pair to Matter hue and saturation (0-254)."""
    hsl = xy_to_hsl(x, y)
    return degrees_to_matter_hue(hsl.h), percent_to_matter_saturation(hsl.s)


def matter_hs_to_xy(hue: int, saturation: int) -> Tuple[float, float]:
    """Convert Matter hue and saturation (0-254) to a CIE xy pair."""
    rgb = hsl_to_rgb(matter_hue_to_degrees(hue), matter_saturation_to_percent(saturation), 50)
    return rgb_to_xy(*rgb)


def degrees_to_matter_hue(degrees: float) -> int:
    return max(0, min(MATTER_SCALE, round(degrees / 360 * MATTER_SCALE)))


def percent_to_matter_saturation(percent: float) -> int:
    return max(0, min(MATTER_SCALE, round(percent / 100 * MATTER_SCALE)))


def matter_hue_to_degrees(hue: int) -> float:
    return round(hue * 360 / MATTER_SCALE, 2)


def matter_saturation_to_percent(saturation: int) -> float:
    return round(saturation * 100 / MATTER_SCALE, 2)


def matter_xy_to_float(value: int) -> float:
    return round(value / XY_SCALE, 4)


def float_to_matter_xy(value: float) -> int:
    return max(0, min(0xFEFF, round(value * XY_SCALE)))


def kelvin_to_mireds(kelvin: float) -> int:
    return round(1_000_000 / kelvin)


def mireds_to_kelvin(mireds: float) -> int:
    return round(1_000_000 / mireds)
