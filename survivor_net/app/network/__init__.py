"""
network — survivor network feeds around the check-in engine.

Sub-modules:
    models     — SOS alerts, threat reports, chat messages, presence
    catalog    — default zones and relief camps
    feeds      — bounded in-memory feed stores
    broadcast  — realtime event fan-out to websocket subscribers
"""
