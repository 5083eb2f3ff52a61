"""Exception types raised by TunnelHunter."""


class TunnelHunterError(Exception):
    """Base class for all TunnelHunter errors."""


class ConfigError(TunnelHunterError):
    """Invalid configuration detected at startup."""


class SignatureError(ConfigError):
    """The response classification table could not be loaded."""


class EgressDiscoveryError(TunnelHunterError):
    """Local network interfaces could not be enumerated."""
