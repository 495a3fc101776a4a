"""Jurisdiction lookup tables used by the property mappers."""

from __future__ import annotations

from market_sync.models import PropertyType as PT


# -- Connecticut ------------------------------------------------------------

CT_EQUALIZATION_RATIO = 1.43
CT_MIN_ASSESSED_VALUE = 20000.0
CT_DEFAULT_CENTROID = (41.3, -72.9)
CT_DEFAULT_ZIP = "06000"

CT_STATE_USE_MAP = {
    "1000": PT.SFH, "1010": PT.SFH, "1011": PT.SFH, "1012": PT.SFH, "1013": PT.SFH,
    "1020": PT.SFH, "1021": PT.SFH, "1030": PT.SFH, "1090": PT.SFH,
    "1040": PT.MULTI_2_4, "1041": PT.MULTI_2_4, "1050": PT.MULTI_2_4,
    "1060": PT.MULTI_5_PLUS, "1070": PT.MULTI_5_PLUS, "1080": PT.MULTI_5_PLUS,
    "2010": PT.CONDO, "2020": PT.CONDO, "2030": PT.CONDO, "2040": PT.CONDO,
    "3010": PT.VACANT_LAND, "3020": PT.VACANT_LAND,
    "4010": PT.COMMERCIAL, "4020": PT.COMMERCIAL, "4030": PT.COMMERCIAL,
    "5010": PT.MIXED_USE, "5020": PT.MIXED_USE,
}

CT_TOWN_ZIP = {
    "Waterbury": "06702", "Norwalk": "06850", "Danbury": "06810",
    "New Britain": "06051", "Greenwich": "06830", "Fairfield": "06824",
    "West Hartford": "06107", "Hamden": "06514", "Milford": "06460",
    "Meriden": "06450", "Bristol": "06010", "Manchester": "06040",
    "West Haven": "06516", "Stratford": "06614", "Middletown": "06457",
    "Shelton": "06484", "Trumbull": "06611", "Darien": "06820",
    "Westport": "06880", "New Canaan": "06840", "Ridgefield": "06877",
    "New Haven": "06510", "Stamford": "06901", "Bridgeport": "06601",
    "Hartford": "06103",
}

CT_TOWN_CENTROIDS = {
    "Stamford": (41.0534, -73.5387), "Bridgeport": (41.1865, -73.1952),
    "New Haven": (41.3081, -72.9282), "Hartford": (41.7658, -72.6734),
    "Waterbury": (41.5582, -73.0515), "Norwalk": (41.1177, -73.4082),
    "Danbury": (41.3948, -73.4540), "New Britain": (41.6612, -72.7795),
    "Greenwich": (41.0262, -73.6285), "Fairfield": (41.1408, -73.2614),
    "West Hartford": (41.7620, -72.7420), "Hamden": (41.3959, -72.8968),
    "Milford": (41.2223, -73.0565), "Meriden": (41.5382, -72.8071),
    "Bristol": (41.6718, -72.9493), "Manchester": (41.7759, -72.5215),
    "West Haven": (41.2712, -72.9470), "Stratford": (41.1845, -73.1332),
    "Middletown": (41.5622, -72.6505), "Shelton": (41.3068, -73.0932),
    "Trumbull": (41.2429, -73.2008), "Darien": (41.0787, -73.4696),
    "Westport": (41.1415, -73.3579), "New Canaan": (41.1468, -73.4951),
    "Ridgefield": (41.2815, -73.4985),
}

CT_TOWN_COUNTY = {
    "Stamford": "Fairfield", "Bridgeport": "Fairfield", "Norwalk": "Fairfield",
    "Danbury": "Fairfield", "Greenwich": "Fairfield", "Fairfield": "Fairfield",
    "Milford": "New Haven", "Stratford": "Fairfield", "Shelton": "Fairfield",
    "Trumbull": "Fairfield", "Darien": "Fairfield", "Westport": "Fairfield",
    "New Canaan": "Fairfield", "Ridgefield": "Fairfield",
    "New Haven": "New Haven", "Waterbury": "New Haven", "Hamden": "New Haven",
    "Meriden": "New Haven", "West Haven": "New Haven",
    "Hartford": "Hartford", "New Britain": "Hartford", "Bristol": "Hartford",
    "West Hartford": "Hartford", "Manchester": "Hartford",
    "Middletown": "Middlesex",
}


# -- New York City ----------------------------------------------------------

NYC_EQUALIZATION_RATIO = 3.0
NYC_MAX_ESTIMATED_VALUE = 50_000_000

NYC_BOROUGHS = {
    "1": "Manhattan", "2": "Bronx", "3": "Brooklyn", "4": "Queens", "5": "Staten Island",
    "MN": "Manhattan", "BX": "Bronx", "BK": "Brooklyn", "QN": "Queens", "SI": "Staten Island",
    "MANHATTAN": "Manhattan", "BRONX": "Bronx", "BROOKLYN": "Brooklyn",
    "QUEENS": "Queens", "STATEN ISLAND": "Staten Island",
}

NYC_BOROUGH_COUNTY = {
    "Manhattan": "New York",
    "Bronx": "Bronx",
    "Brooklyn": "Kings",
    "Queens": "Queens",
    "Staten Island": "Richmond",
}

NYC_BOROUGH_CENTROIDS = {
    "Manhattan": (40.7831, -73.9712),
    "Brooklyn": (40.6782, -73.9442),
    "Queens": (40.7282, -73.7949),
    "Bronx": (40.8448, -73.8648),
    "Staten Island": (40.5795, -74.1502),
}

# PLUTO numeric land-use category.
PLUTO_LAND_USE_MAP = {
    "01": PT.SFH,  # one and two family
    "02": PT.MULTI_5_PLUS,  # multi-family walk-up
    "03": PT.MULTI_5_PLUS,  # multi-family elevator
    "04": PT.MIXED_USE,
    "05": PT.COMMERCIAL,
    "06": PT.COMMERCIAL,  # industrial
    "07": PT.COMMERCIAL,  # transportation and utility
    "08": PT.COMMERCIAL,  # public facilities
    "09": PT.VACANT_LAND,  # open space
    "10": PT.COMMERCIAL,  # parking
    "11": PT.VACANT_LAND,
}

# Two-character DOF building class prefix; takes precedence over land use.
PLUTO_BUILDING_CLASS_MAP = {
    "A0": PT.SFH, "A1": PT.SFH, "A2": PT.SFH, "A3": PT.SFH, "A4": PT.SFH, "A5": PT.SFH,
    "B1": PT.MULTI_2_4, "B2": PT.MULTI_2_4, "B3": PT.MULTI_2_4, "B9": PT.MULTI_2_4,
    "C0": PT.MULTI_2_4, "C1": PT.MULTI_5_PLUS, "C2": PT.MULTI_5_PLUS, "C4": PT.MULTI_5_PLUS,
    "C6": PT.CONDO,
    "D0": PT.CONDO, "D1": PT.MULTI_5_PLUS, "D3": PT.MULTI_5_PLUS,
    "R1": PT.CONDO, "R2": PT.CONDO, "R3": PT.CONDO, "R4": PT.CONDO,
    "R6": PT.CONDO, "R9": PT.CONDO, "RM": PT.TOWNHOME,
    "S0": PT.MIXED_USE, "S1": PT.MIXED_USE, "S2": PT.MIXED_USE, "S3": PT.MIXED_USE,
    "S4": PT.MIXED_USE,
    "H1": PT.COMMERCIAL, "H2": PT.COMMERCIAL, "H3": PT.COMMERCIAL, "H4": PT.COMMERCIAL,
    "K1": PT.COMMERCIAL, "K2": PT.COMMERCIAL, "K3": PT.COMMERCIAL, "K4": PT.COMMERCIAL,
    "O1": PT.COMMERCIAL, "O2": PT.COMMERCIAL, "O3": PT.COMMERCIAL, "O4": PT.COMMERCIAL,
    "V0": PT.VACANT_LAND, "V1": PT.VACANT_LAND, "V2": PT.VACANT_LAND, "V3": PT.VACANT_LAND,
}
