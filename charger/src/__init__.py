"""
Charger daemon package for the solar/tariff EV charger switch.

Reads instantaneous demand from a Rainforest EAGLE meter gateway, decides
every poll whether the charger outlet should be energized (solar surplus or
low-cost tariff window), drives the Insteon hub switch, and notifies by email
when the switch changes state.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-001)

TODO:
- None
"""
