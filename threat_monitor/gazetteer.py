from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, NamedTuple


class GazetteerEntry(NamedTuple):
    name: str
    lat: float
    lon: float
    country: str


# name -> (lat, lon, country)
_KNOWN_PLACES = {
    # major conflict zones
    "Ukraine": (48.3794, 31.1656, "Ukraine"),
    "Kyiv": (50.4501, 30.5234, "Ukraine"),
    "Kharkiv": (49.9935, 36.2304, "Ukraine"),
    "Mariupol": (47.0951, 37.5497, "Ukraine"),
    "Odesa": (46.4825, 30.7233, "Ukraine"),
    "Crimea": (44.9521, 34.1024, "Ukraine"),
    "Donbas": (48.0159, 37.8028, "Ukraine"),
    "Moscow": (55.7558, 37.6173, "Russia"),
    "Russia": (61.524, 105.3188, "Russia"),
    "St. Petersburg": (59.9311, 30.3609, "Russia"),

    # middle east
    "Gaza": (31.3547, 34.3088, "Palestine"),
    "West Bank": (31.9474, 35.2272, "Palestine"),
    "Israel": (31.0461, 34.8516, "Israel"),
    "Jerusalem": (31.7683, 35.2137, "Israel"),
    "Tel Aviv": (32.0853, 34.7818, "Israel"),
    "Tehran": (35.6892, 51.389, "Iran"),
    "Iran": (32.4279, 53.688, "Iran"),
    "Syria": (34.8021, 38.9968, "Syria"),
    "Damascus": (33.5138, 36.2765, "Syria"),
    "Aleppo": (36.2021, 37.1343, "Syria"),
    "Yemen": (15.5527, 48.5164, "Yemen"),
    "Sanaa": (15.3694, 44.191, "Yemen"),
    "Iraq": (33.2232, 43.6793, "Iraq"),
    "Baghdad": (33.3152, 44.3661, "Iraq"),
    "Lebanon": (33.8547, 35.8623, "Lebanon"),
    "Beirut": (33.8938, 35.5018, "Lebanon"),
    "Jordan": (30.5852, 36.2384, "Jordan"),
    "Amman": (31.9454, 35.9284, "Jordan"),
    "Saudi Arabia": (23.8859, 45.0792, "Saudi Arabia"),
    "Riyadh": (24.7136, 46.6753, "Saudi Arabia"),

    # asia
    "Beijing": (39.9042, 116.4074, "China"),
    "China": (35.8617, 104.1954, "China"),
    "Shanghai": (31.2304, 121.4737, "China"),
    "Hong Kong": (22.3193, 114.1694, "China"),
    "Taiwan": (23.6978, 120.9605, "Taiwan"),
    "Taipei": (25.033, 121.5654, "Taiwan"),
    "North Korea": (40.3399, 127.5101, "North Korea"),
    "Pyongyang": (39.0392, 125.7625, "North Korea"),
    "South Korea": (35.9078, 127.7669, "South Korea"),
    "Seoul": (37.5665, 126.978, "South Korea"),
    "Japan": (36.2048, 138.2529, "Japan"),
    "Tokyo": (35.6762, 139.6503, "Japan"),
    "India": (20.5937, 78.9629, "India"),
    "New Delhi": (28.6139, 77.209, "India"),
    "Mumbai": (19.076, 72.8777, "India"),
    "Pakistan": (30.3753, 69.3451, "Pakistan"),
    "Islamabad": (33.6844, 73.0479, "Pakistan"),
    "Afghanistan": (33.9391, 67.71, "Afghanistan"),
    "Kabul": (34.5553, 69.2075, "Afghanistan"),
    "Myanmar": (21.9162, 95.956, "Myanmar"),
    "Philippines": (12.8797, 121.774, "Philippines"),
    "Manila": (14.5995, 120.9842, "Philippines"),

    # africa
    "Sudan": (12.8628, 30.2176, "Sudan"),
    "Khartoum": (15.5007, 32.5599, "Sudan"),
    "Ethiopia": (9.145, 40.4897, "Ethiopia"),
    "Addis Ababa": (8.9806, 38.7578, "Ethiopia"),
    "Somalia": (5.1521, 46.1996, "Somalia"),
    "Mogadishu": (2.0469, 45.3182, "Somalia"),
    "Nigeria": (9.082, 8.6753, "Nigeria"),
    "Lagos": (6.5244, 3.3792, "Nigeria"),
    "South Africa": (-30.5595, 22.9375, "South Africa"),
    "Johannesburg": (-26.2041, 28.0473, "South Africa"),
    "Egypt": (26.8206, 30.8025, "Egypt"),
    "Cairo": (30.0444, 31.2357, "Egypt"),
    "Libya": (26.3351, 17.2283, "Libya"),
    "Tripoli": (32.8872, 13.1913, "Libya"),
    "Tunisia": (33.8869, 9.5375, "Tunisia"),
    "Morocco": (31.7917, -7.0926, "Morocco"),
    "Algeria": (28.0339, 1.6596, "Algeria"),
    "Kenya": (-0.0236, 37.9062, "Kenya"),
    "Nairobi": (-1.2921, 36.8219, "Kenya"),
    "Democratic Republic of Congo": (-4.0383, 21.7587, "DRC"),
    "DRC": (-4.0383, 21.7587, "DRC"),
    "Congo": (-4.0383, 21.7587, "DRC"),

    # americas
    "United States": (37.0902, -95.7129, "United States"),
    "USA": (37.0902, -95.7129, "United States"),
    "Washington": (38.9072, -77.0369, "United States"),
    "Washington DC": (38.9072, -77.0369, "United States"),
    "New York": (40.7128, -74.006, "United States"),
    "Los Angeles": (34.0522, -118.2437, "United States"),
    "Chicago": (41.8781, -87.6298, "United States"),
    "Houston": (29.7604, -95.3698, "United States"),
    "Miami": (25.7617, -80.1918, "United States"),
    "Minneapolis": (44.9778, -93.265, "United States"),
    "Texas": (31.9686, -99.9018, "United States"),
    "California": (36.7783, -119.4179, "United States"),
    "Florida": (27.6648, -81.5158, "United States"),
    "Venezuela": (6.4238, -66.5897, "Venezuela"),
    "Caracas": (10.4806, -66.9036, "Venezuela"),
    "Brazil": (-14.235, -51.9253, "Brazil"),
    "Sao Paulo": (-23.5505, -46.6333, "Brazil"),
    "Mexico": (23.6345, -102.5528, "Mexico"),
    "Mexico City": (19.4326, -99.1332, "Mexico"),
    "Colombia": (4.5709, -74.2973, "Colombia"),
    "Bogota": (4.711, -74.0721, "Colombia"),
    "Argentina": (-38.4161, -63.6167, "Argentina"),
    "Buenos Aires": (-34.6037, -58.3816, "Argentina"),
    "Chile": (-35.6751, -71.543, "Chile"),
    "Santiago": (-33.4489, -70.6693, "Chile"),
    "Peru": (-9.19, -75.0152, "Peru"),
    "Lima": (-12.0464, -77.0428, "Peru"),
    "Canada": (56.1304, -106.3468, "Canada"),
    "Ottawa": (45.4215, -75.6972, "Canada"),
    "Toronto": (43.6532, -79.3832, "Canada"),

    # europe
    "United Kingdom": (55.3781, -3.436, "United Kingdom"),
    "UK": (55.3781, -3.436, "United Kingdom"),
    "Britain": (55.3781, -3.436, "United Kingdom"),
    "London": (51.5074, -0.1278, "United Kingdom"),
    "France": (46.2276, 2.2137, "France"),
    "Paris": (48.8566, 2.3522, "France"),
    "Germany": (51.1657, 10.4515, "Germany"),
    "Berlin": (52.52, 13.405, "Germany"),
    "Italy": (41.8719, 12.5674, "Italy"),
    "Rome": (41.9028, 12.4964, "Italy"),
    "Spain": (40.4637, -3.7492, "Spain"),
    "Madrid": (40.4168, -3.7038, "Spain"),
    "Poland": (51.9194, 19.1451, "Poland"),
    "Warsaw": (52.2297, 21.0122, "Poland"),
    "Turkey": (38.9637, 35.2433, "Turkey"),
    "Ankara": (39.9334, 32.8597, "Turkey"),
    "Istanbul": (41.0082, 28.9784, "Turkey"),
    "Greece": (39.0742, 21.8243, "Greece"),
    "Athens": (37.9838, 23.7275, "Greece"),
    "Serbia": (44.0165, 21.0059, "Serbia"),
    "Belgrade": (44.7866, 20.4489, "Serbia"),
    "Kosovo": (42.6026, 20.903, "Kosovo"),
    "Pristina": (42.6629, 21.1655, "Kosovo"),
    "Belarus": (53.7098, 27.9534, "Belarus"),
    "Minsk": (53.9006, 27.559, "Belarus"),

    # oceania
    "Australia": (-25.2744, 133.7751, "Australia"),
    "Sydney": (-33.8688, 151.2093, "Australia"),
    "Melbourne": (-37.8136, 144.9631, "Australia"),
    "New Zealand": (-40.9006, 174.886, "New Zealand"),
    "Wellington": (-41.2865, 174.7762, "New Zealand"),

    # frequent hotspots in security reporting
    "Kherson": (46.6354, 32.6169, "Ukraine"),
    "Zaporizhzhia": (47.8388, 35.1396, "Ukraine"),
    "Rafah": (31.2969, 34.2455, "Palestine"),
    "Khan Younis": (31.3462, 34.3063, "Palestine"),
    "Darfur": (13.0, 24.0, "Sudan"),
    "Port Sudan": (19.6158, 37.2164, "Sudan"),
    "Goma": (-1.6585, 29.2205, "DRC"),
    "Haiti": (18.9712, -72.2852, "Haiti"),
    "Port-au-Prince": (18.5944, -72.3074, "Haiti"),
    "Red Sea": (20.2802, 38.5126, "Yemen"),
    "Strait of Hormuz": (26.5667, 56.25, "Iran"),
    "Sahel": (14.4974, 1.0, "Mali"),
}


def _build_index() -> Mapping[str, GazetteerEntry]:
    index = {}
    for name, (lat, lon, country) in _KNOWN_PLACES.items():
        index[name.lower()] = GazetteerEntry(name, lat, lon, country)
    return MappingProxyType(index)


# lowercased name -> entry, built once at import
GAZETTEER: Mapping[str, GazetteerEntry] = _build_index()
