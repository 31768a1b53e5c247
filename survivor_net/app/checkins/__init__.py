"""
checkins — daily safety check-in engine.

Sub-modules:
    day_keys       — UTC day identifiers and the staleness rule
    models         — Participant, CheckInEntry, DangerZone, Location
    registry       — process-wide participant store
    state_machine  — applies a check-in (streak + status)
    danger_zones   — sweep: stale streak → missing + danger zone
    coordinator    — engine + broadcast hub + durable mirror
    sweeper        — periodic sweep task
    mirror / orm   — durable copy in SQL
"""
