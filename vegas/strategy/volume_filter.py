"""Volume filter — rejects entries on abnormally heavy bars."""


def is_volume_spike(
    volume: float,
    avg_volume: float,
    spike_ratio: float,
) -> bool:
    """Return ``True`` if *volume* exceeds ``avg_volume × spike_ratio``.

    A non-positive average (no history yet, or a zero-volume feed) is
    never a spike.
    """
    if avg_volume <= 0:
        return False
    return volume > avg_volume * spike_ratio
