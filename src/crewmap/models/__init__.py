"""Data models for feed, directory and trail records."""

from crewmap.models._base import StoreModel, TraccarModel
from crewmap.models.credentials import Credentials
from crewmap.models.crew import Crew, Member
from crewmap.models.device import Device
from crewmap.models.position import Position
from crewmap.models.trail import TrailPoint

__all__ = [
    "Credentials",
    "Crew",
    "Device",
    "Member",
    "Position",
    "StoreModel",
    "TrailPoint",
    "TraccarModel",
]
