from oqtools.core.drives.pulses import InstPulse, hahn_echo, validate_pulses

__all__ = [
    "InstPulse",
    "hahn_echo",
    "validate_pulses",
]
