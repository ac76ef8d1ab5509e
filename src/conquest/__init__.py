"""Territory conquest engine.

Turns finished GPS loops into owned territories and resolves the conflicts a
new claim creates with territories owned by other users.
"""

__version__ = "0.1.0"
