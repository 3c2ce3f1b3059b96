from cadence.consts import VERSION

__version__ = VERSION
