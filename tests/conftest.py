from __future__ import annotations

import pytest

from backlightd.domain.models import CalibrationProfile, SamplerConfig, TransitionConfig


@pytest.fixture
def profile() -> CalibrationProfile:
    return CalibrationProfile(
        ambient_luma_min=0.05,
        ambient_luma_max=0.8,
        screen_brightness_min=1,
        screen_brightness_max=937,
        calibrated=True,
    )


@pytest.fixture
def fast_sampler_cfg() -> SamplerConfig:
    return SamplerConfig(
        warmup_frames=0,
        read_timeout_s=0.5,
        max_retries=2,
        capture_interval_s=0.02,
        error_throttle_s=0.0,
    )


@pytest.fixture
def fast_transition_cfg() -> TransitionConfig:
    return TransitionConfig(step_interval_s=0.001, step_divisor=4, step_max=50, max_failures=3)
