"""Volume filters."""

from strategies.filters.volume.volume_filter import VolumeFilter

__all__ = ['VolumeFilter']
