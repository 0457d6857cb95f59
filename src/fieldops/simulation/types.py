"""Closed category and status vocabularies shared by both registries.

Every per-member table below is keyed by the full enum.  Adding a member
without extending the tables trips the exhaustiveness tests.
"""

from __future__ import annotations

from enum import Enum


class IncidentCategory(str, Enum):
    """What kind of event an incident models."""
    FIRE = "fire"
    CRASH = "crash"
    MEDICAL = "medical"
    FLOOD = "flood"
    HAZARDOUS = "hazardous"
    FOOD_SHORTAGE = "food_shortage"
    WATER_SHORTAGE = "water_shortage"
    MINOR_INJURY = "minor_injury"


class UnitCategory(str, Enum):
    """Responder class.  The id prefix of each unit encodes its category."""
    FIRE = "Fire"
    AMBULANCE = "Ambulance"
    SHELTER = "Shelter"
    FIRST_AID = "FirstAid"
    FOOD_SUPPLY = "FoodSupply"
    WATER_TANKER = "WaterTanker"


class UnitStatus(str, Enum):
    AVAILABLE = "available"
    EN_ROUTE = "en-route"
    BUSY = "busy"
    OUT_OF_SERVICE = "out-of-service"


# Severity points per millisecond while nobody is working the incident.
GROWTH_RATES: dict[IncidentCategory, float] = {
    IncidentCategory.FIRE: 0.005,
    IncidentCategory.CRASH: 0.0,
    IncidentCategory.MEDICAL: 0.0,
    IncidentCategory.FLOOD: 0.005,
    IncidentCategory.HAZARDOUS: 0.0,
    IncidentCategory.FOOD_SHORTAGE: 0.003,
    IncidentCategory.WATER_SHORTAGE: 0.003,
    IncidentCategory.MINOR_INJURY: 0.0,
}

# Which unit class auto-dispatch sends.  Fire crews are the general
# response class for anything not medical.
REQUIRED_UNIT: dict[IncidentCategory, UnitCategory] = {
    IncidentCategory.FIRE: UnitCategory.FIRE,
    IncidentCategory.CRASH: UnitCategory.AMBULANCE,
    IncidentCategory.MEDICAL: UnitCategory.AMBULANCE,
    IncidentCategory.FLOOD: UnitCategory.FIRE,
    IncidentCategory.HAZARDOUS: UnitCategory.FIRE,
    IncidentCategory.FOOD_SHORTAGE: UnitCategory.FIRE,
    IncidentCategory.WATER_SHORTAGE: UnitCategory.FIRE,
    IncidentCategory.MINOR_INJURY: UnitCategory.FIRE,
}

UNIT_PREFIXES: dict[UnitCategory, str] = {
    UnitCategory.FIRE: "F",
    UnitCategory.AMBULANCE: "A",
    UnitCategory.SHELTER: "S",
    UnitCategory.FIRST_AID: "FA",
    UnitCategory.FOOD_SUPPLY: "FS",
    UnitCategory.WATER_TANKER: "WT",
}

# Degrees of straight-line travel per tick.
UNIT_SPEEDS: dict[UnitCategory, float] = {
    UnitCategory.FIRE: 0.00015,
    UnitCategory.AMBULANCE: 0.00020,
    UnitCategory.SHELTER: 0.00020,
    UnitCategory.FIRST_AID: 0.00020,
    UnitCategory.FOOD_SUPPLY: 0.00020,
    UnitCategory.WATER_TANKER: 0.00020,
}

# Statuses an operator may force directly.
OVERRIDE_STATUSES = frozenset({
    UnitStatus.AVAILABLE,
    UnitStatus.OUT_OF_SERVICE,
    UnitStatus.BUSY,
})
