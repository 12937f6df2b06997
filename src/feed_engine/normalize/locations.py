"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

from feed_engine.models import Location

STATE_ABBREVS = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    "DC",
)  # fmt: skip

STATE_NAMES: Dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
}  # fmt: skip

# Checked before any US heuristic so "Remote - Europe" is not read as remote-US.
# Region-level keywords map to None: clearly non-US, country unknown.
NON_US_KEYWORDS: Dict[str, Optional[str]] = {
    "europe": None, "european": None, "emea": None, "apac": None, "latam": None,
    "united kingdom": "GB", "uk": "GB", "england": "GB", "scotland": "GB", "wales": "GB", "london": "GB",
    "germany": "DE", "berlin": "DE", "munich": "DE", "frankfurt": "DE", "hamburg": "DE",
    "france": "FR", "paris": "FR", "lyon": "FR",
    "netherlands": "NL", "amsterdam": "NL", "rotterdam": "NL",
    "spain": "ES", "madrid": "ES", "barcelona": "ES",
    "italy": "IT", "milan": "IT", "rome": "IT",
    "portugal": "PT", "lisbon": "PT",
    "ireland": "IE", "dublin": "IE",
    "sweden": "SE", "stockholm": "SE",
    "poland": "PL", "warsaw": "PL", "krakow": "PL",
    "switzerland": "CH", "zurich": "CH",
    "canada": "CA", "toronto": "CA", "vancouver": "CA", "montreal": "CA", "ottawa": "CA",
    "australia": "AU", "sydney": "AU", "melbourne": "AU",
    "india": "IN", "bangalore": "IN", "bengaluru": "IN", "mumbai": "IN", "hyderabad": "IN", "pune": "IN",
    "japan": "JP", "tokyo": "JP",
    "singapore": "SG",
    "brazil": "BR", "são paulo": "BR",
    "mexico": "MX", "mexico city": "MX",
    "israel": "IL", "tel aviv": "IL",
}  # fmt: skip

_COUNTRY_AND_REGION_WORDS = {
    "europe", "european", "emea", "apac", "latam", "united kingdom", "uk", "england", "scotland",
    "wales", "germany", "france", "netherlands", "spain", "italy", "portugal", "ireland", "sweden",
    "poland", "switzerland", "canada", "australia", "india", "japan", "brazil", "mexico", "israel",
}  # fmt: skip

# Minimal gazetteer for sources that do not ship coordinates.
CITY_COORDINATES: Dict[str, Tuple[float, float]] = {
    "san francisco": (37.7749, -122.4194),
    "new york": (40.7128, -74.0060),
    "seattle": (47.6062, -122.3321),
    "austin": (30.2672, -97.7431),
    "denver": (39.7392, -104.9903),
    "chicago": (41.8781, -87.6298),
    "boston": (42.3601, -71.0589),
    "los angeles": (34.0522, -118.2437),
}

_STATE_PATTERN = "(?:" + "|".join(STATE_ABBREVS) + ")"
_US_KEYWORDS = r"(?<![a-z])(?:united states|u\.s\.a\.?|u\.s\.?|usa)(?![a-z])"
_REMOTE_RE = re.compile(r"\b(?:remote|anywhere|distributed|work from home|wfh)\b", re.IGNORECASE)
_EXPLICIT_US = re.compile(_US_KEYWORDS, re.IGNORECASE)
_US_TOKEN = re.compile(r"\bUS\b")
_CITY_STATE = re.compile(rf"\b([A-Za-z .'-]+),\s*({_STATE_PATTERN})\b(?:\s+\d{{5}})?")
_STATE_ONLY = re.compile(rf"(?:^|,|\s)\s*({_STATE_PATTERN})\s*$")
_NON_US_RES = [
    (re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE), code) for keyword, code in NON_US_KEYWORDS.items()
]
_STATE_NAMES_RE = re.compile(r"\b(?:" + "|".join(sorted(STATE_NAMES, key=len, reverse=True)) + r")\b")
_STATE_NAMES_LONGEST_FIRST = sorted(STATE_NAMES.items(), key=lambda item: len(item[0]), reverse=True)
_STRIP_REMOTE = re.compile(r"\(?\b(?:remote|hybrid|onsite|on-site)\b\)?\s*[-/:]?\s*", re.IGNORECASE)


def _normalize_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return " ".join(value.strip().split())


def _city_from(text: str) -> Optional[str]:
    cleaned = _STRIP_REMOTE.sub("", text).strip(" ,-/")
    if not cleaned:
        return None
    city = cleaned.split(",")[0].strip()
    return city.title() if city else None


def _non_us_match(lowered: str) -> Tuple[bool, Optional[str]]:
    for pattern, code in _NON_US_RES:
        if pattern.search(lowered):
            return True, code
    return False, None


def normalize_location(
    raw: Optional[str],
    *,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> Location:
    """
    Parse a free-text location into city/region/country.

    Country is only set when it can be determined; "US" is inferred from remote-US
    phrasing, explicit US mentions, "City, ST" patterns, or full state names.
    """
    text = _normalize_text(raw)
    lowered = text.lower()
    is_remote = bool(_REMOTE_RE.search(text))

    if not text:
        return Location(raw="", is_remote=False, us_guess_reason="none")

    non_us, code = _non_us_match(_STATE_NAMES_RE.sub(" ", lowered))
    city_state = _CITY_STATE.search(text)
    # "Vancouver, WA" is American, "Berlin, DE" is not.
    if city_state and non_us and code == city_state.group(2):
        city_state = None

    if non_us and not city_state:
        city = None if is_remote else _city_from(text)
        if city and city.lower() in _COUNTRY_AND_REGION_WORDS:
            city = None
        return _with_coordinates(
            Location(raw=text, city=city, country=code, is_remote=is_remote, us_guess_reason="non_us"),
            latitude,
            longitude,
        )

    if city_state:
        city = _city_from(city_state.group(1))
        return _with_coordinates(
            Location(
                raw=text,
                city=city,
                region=city_state.group(2),
                country="US",
                is_remote=is_remote,
                us_guess_reason="city_state",
            ),
            latitude,
            longitude,
        )

    if is_remote and (_US_TOKEN.search(text) or _EXPLICIT_US.search(lowered)):
        return Location(raw=text, country="US", is_remote=True, us_guess_reason="remote_us")

    for name, abbrev in _STATE_NAMES_LONGEST_FIRST:
        if re.search(rf"\b{name}\b", lowered):
            head = lowered.split(",")[0].strip()
            city = _city_from(text) if head != name else None
            return _with_coordinates(
                Location(
                    raw=text,
                    city=city,
                    region=abbrev,
                    country="US",
                    is_remote=is_remote,
                    us_guess_reason="state_name",
                ),
                latitude,
                longitude,
            )

    if _US_TOKEN.search(text) or _EXPLICIT_US.search(lowered):
        head = text.split(",")[0]
        has_head = "," in text and not (_US_TOKEN.search(head) or _EXPLICIT_US.search(head.lower()))
        city = _city_from(head) if has_head else None
        return _with_coordinates(
            Location(raw=text, city=city, country="US", is_remote=is_remote, us_guess_reason="explicit_us"),
            latitude,
            longitude,
        )

    state_only = _STATE_ONLY.search(text)
    if state_only and not is_remote:
        return Location(raw=text, region=state_only.group(1), country="US", us_guess_reason="state_abbrev")

    return _with_coordinates(
        Location(raw=text, city=None if is_remote else _city_from(text), is_remote=is_remote),
        latitude,
        longitude,
    )


def _with_coordinates(location: Location, latitude: Optional[float], longitude: Optional[float]) -> Location:
    if latitude is not None and longitude is not None:
        lat, lng = float(latitude), float(longitude)
    elif location.city and location.city.lower() in CITY_COORDINATES:
        lat, lng = CITY_COORDINATES[location.city.lower()]
    else:
        return location
    return Location(
        raw=location.raw,
        city=location.city,
        region=location.region,
        country=location.country,
        latitude=lat,
        longitude=lng,
        is_remote=location.is_remote,
        us_guess_reason=location.us_guess_reason,
    )


def is_out_of_scope(location: Location, *, us_only: bool) -> bool:
    """Only-US safety net: anything not positively placed in the US is out of scope."""
    if not us_only:
        return False
    return not location.is_us
