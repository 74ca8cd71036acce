from __future__ import annotations


def step_size(delta: int, divisor: int, max_step: int) -> int:
    """Magnitude of one step: a fraction of the gap, at least 1, at most ``max_step``."""
    return max(1, min(abs(delta) // divisor, max_step))


def step_toward(target: int, current: int, divisor: int, max_step: int) -> int:
    """Next brightness value on the way from ``current`` to ``target``.

    Large gaps close quickly, small ones by single units, and the result
    never passes ``target``.
    """
    delta = target - current
    if delta == 0:
        return current
    step = min(step_size(delta, divisor, max_step), abs(delta))
    return current + step if delta > 0 else current - step
