"""
Effluent Monitor.

Continuous monitoring for fleets of effluent/wastewater sensor devices.
Live telemetry is diagnosed against operating thresholds, device reachability
is tracked, and critical conditions are fanned out to push, email, SMS and
WhatsApp gateways alongside an in-process notification feed.
"""

__version__ = "0.1.0"
