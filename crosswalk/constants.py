"""Default heuristic tables for HVAC crosswalk matching."""

# Product type -> keywords expected in the competitor description
PRODUCT_TYPE_KEYWORDS: dict[str, list[str]] = {
    "furnace": ["furnace", "heating", "gas heat", "warm air", "gas unit"],
    "heat_pump": ["heat pump", "hp", "heating cooling", "dual fuel", "heat/cool"],
    "air_conditioner": ["air condition", "ac ", "cooling", "condenser", "cool only"],
    "ahu": ["air handler", "ahu", "air handling", "fan coil", "indoor unit"],
    "coil": ["coil", "evaporator", "condenser coil", "indoor coil"],
    "other": ["accessory", "part", "component", "control"],
}

# Manufacturers sharing platforms
BRAND_FAMILIES: list[list[str]] = [
    ["trane", "american standard"],
    ["carrier", "bryant", "payne"],
    ["lennox", "ducane"],
    ["goodman", "amana", "daikin"],
    ["rheem", "ruud"],
    ["york", "luxaire", "champion"],
]

# Expected price per ton (USD) by product type
PRICE_BANDS_PER_TON: dict[str, tuple[float, float]] = {
    "furnace": (800, 3000),
    "heat_pump": (1200, 4000),
    "air_conditioner": (1000, 3500),
    "ahu": (500, 2000),
    "coil": (200, 1000),
    "other": (50, 1500),
}
DEFAULT_PRICE_BAND: tuple[float, float] = (100, 5000)
DEFAULT_TONNAGE = 3.0

# Brand abbreviations seen at the start of distributor SKUs
BRAND_PREFIXES: list[str] = [
    "TRANE", "TRN",
    "CARRIER", "CARR", "CAR",
    "LENNOX", "LEN",
    "YORK", "YRK",
    "GOODMAN", "GDM",
    "RHEEM", "RHM",
    "PAYNE", "PAY",
    "BRYANT", "BRY",
]

# Brand -> series prefixes of its model numbers
BRAND_SERIES_PREFIXES: dict[str, list[str]] = {
    "carrier": ["24", "25", "38", "40", "42", "50", "58", "ACC", "HPA", "MN7", "TP5", "FB4", "FA4", "CA", "CC", "HC"],
    "trane": ["4TTR", "4TWP", "TUD", "TUE", "XV", "XR", "XL", "TTX", "TTA", "TUC", "XE", "XB"],
    "rheem": ["RACA", "RPQZ", "R95", "R97", "RGRM", "RKPA", "RQPM", "RQRM", "RA", "RG", "RP"],
    "goodman": ["GSX", "GSZ", "GMVC", "ARUF", "ASPT", "GMV", "GMP", "GSS", "GPL", "GS", "GM", "AR"],
    "york": ["YXV", "YZV", "TG9", "YCD", "YCG", "YFE", "YCJF", "YJAE", "TCGF", "YC", "YJ", "TG"],
    "lennox": ["XC", "XP", "EL", "SLP", "CBA", "ML", "HSX", "CBX", "ELO", "G60", "SL", "CB"],
    "amana": ["ASX", "ASZ", "AVPTC", "AMV", "AS", "AM", "AV"],
    "daikin": ["DX", "DZ", "DM", "DF", "DB", "DK", "DA"],
    "bryant": ["213", "215", "286", "355", "383", "398"],
    "payne": ["PG9", "PA13", "PA14", "PH13", "PH16", "PG", "PA", "PH"],
}

# Short SKU prefix -> brand
SKU_PREFIX_BRANDS: dict[str, str] = {
    "TRN": "trane",
    "CAR": "carrier",
    "LEN": "lennox",
    "YRK": "york",
    "GDM": "goodman",
    "RHM": "rheem",
    "PAY": "payne",
    "BRY": "bryant",
}

REFRIGERANTS = ["R410A", "R454B", "R22", "R32"]

NUMERIC_SPEC_FIELDS = ("tonnage", "seer", "seer2", "afue", "hspf")
TEXT_SPEC_FIELDS = ("refrigerant", "stage")

SPEC_WEIGHTS: dict[str, float] = {
    "tonnage": 1.0,
    "seer": 0.8,
    "seer2": 0.8,
    "afue": 0.7,
    "hspf": 0.6,
    "refrigerant": 0.5,
    "stage": 0.4,
}
DEFAULT_SPEC_WEIGHT = 0.3

# Plausibility bounds for values read from free text
SPEC_BOUNDS: dict[str, tuple[float, float]] = {
    "tonnage": (1, 5),
    "seer": (13, 30),
    "seer2": (11, 28),
    "afue": (80, 98),
    "hspf": (7, 15),
}

BTU_PER_TON = 12000

PRODUCT_TYPE_ALIASES: dict[str, str] = {
    "ac": "air_conditioner",
    "air_conditioning": "air_conditioner",
    "condenser": "air_conditioner",
    "condensing_unit": "air_conditioner",
    "hp": "heat_pump",
    "air_handler": "ahu",
    "fan_coil": "ahu",
    "evaporator_coil": "coil",
    "gas_furnace": "furnace",
}
