import math
import struct
import wave

import numpy as np
import pytest

from standhigh.sound import (
    MIX_SAMPLES,
    RAMP_STEP,
    Listener,
    Mixer,
    PlayingSample,
    Ramp,
    Sample,
    compute_pan_from_listener_and_position,
    compute_pan_weights,
    step_direction_ramp,
    step_position_ramp,
    step_value_ramp,
)


def test_ramp_set_without_time_jumps():
    ramp = Ramp(1.0)
    ramp.set(0.25, 0.0)
    assert ramp.value == 0.25
    assert ramp.target == 0.25
    assert ramp.ramp == 0.0


def test_ramp_set_with_time_only_moves_target():
    ramp = Ramp(1.0)
    ramp.set(0.25, 0.5)
    assert ramp.value == 1.0
    assert ramp.target == 0.25
    assert ramp.ramp == 0.5


def test_pan_weights_are_equal_power():
    for pan in (-1.0, -0.3, 0.0, 0.7, 1.0):
        left, right = compute_pan_weights(pan)
        assert left * left + right * right == pytest.approx(1.0)


def test_pan_weights_centre_and_clamp():
    left, right = compute_pan_weights(0.0)
    assert left == pytest.approx(right)
    assert compute_pan_weights(5.0) == compute_pan_weights(1.0)
    hard_left = compute_pan_weights(-1.0)
    assert hard_left[0] == pytest.approx(1.0)
    assert hard_left[1] == pytest.approx(0.0)


def test_3d_pan_at_listener_position():
    left, right = compute_pan_from_listener_and_position(
        [1.0, 2.0, 3.0], [1.0, 0.0, 0.0], [1.0, 2.0, 3.0], 4.0
    )
    assert left == right == math.sqrt(2.0)


def test_3d_pan_source_to_the_right_without_falloff():
    left, right = compute_pan_from_listener_and_position(
        [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [5.0, 0.0, 0.0], math.inf
    )
    assert left == pytest.approx(0.0, abs=1e-6)
    assert right == pytest.approx(1.0)


def test_3d_pan_halves_at_half_volume_radius():
    left, right = compute_pan_from_listener_and_position(
        [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 3.0, 0.0], 3.0
    )
    assert math.hypot(left, right) == pytest.approx(0.5)
    assert left == pytest.approx(right)


def test_step_value_ramp_short_ramp_finishes():
    ramp = Ramp(0.0)
    ramp.set(1.0, RAMP_STEP / 2.0)
    step_value_ramp(ramp)
    assert ramp.value == 1.0
    assert ramp.ramp == 0.0


def test_step_value_ramp_moves_proportionally():
    ramp = Ramp(0.0)
    ramp.set(1.0, 2.0 * RAMP_STEP)
    step_value_ramp(ramp)
    assert ramp.value == pytest.approx(0.5)
    assert ramp.ramp == pytest.approx(RAMP_STEP)
    step_value_ramp(ramp)
    assert ramp.value == pytest.approx(1.0)


def test_step_position_ramp_reaches_target():
    ramp = Ramp(np.zeros(3))
    ramp.set(np.array([2.0, 4.0, 6.0]), 4.0 * RAMP_STEP)
    step_position_ramp(ramp)
    assert np.allclose(ramp.value, [0.5, 1.0, 1.5])
    for _ in range(4):
        step_position_ramp(ramp)
    assert np.allclose(ramp.value, [2.0, 4.0, 6.0])
    assert ramp.ramp == 0.0


def test_step_direction_ramp_stays_unit_and_arrives():
    ramp = Ramp(np.array([1.0, 0.0, 0.0]))
    ramp.set(np.array([0.0, 1.0, 0.0]), 10.0 * RAMP_STEP)
    for _ in range(5):
        step_direction_ramp(ramp)
        assert np.linalg.norm(ramp.value) == pytest.approx(1.0)
    for _ in range(10):
        step_direction_ramp(ramp)
    assert np.allclose(ramp.value, [0.0, 1.0, 0.0])


def test_step_direction_ramp_opposite_vectors():
    ramp = Ramp(np.array([1.0, 0.0, 0.0]))
    ramp.set(np.array([-1.0, 0.0, 0.0]), 4.0 * RAMP_STEP)
    step_direction_ramp(ramp)
    assert np.linalg.norm(ramp.value) == pytest.approx(1.0)
    assert float(np.dot(ramp.value, [-1.0, 0.0, 0.0])) < 1.0


def test_mix_plays_short_sample_and_finishes():
    mixer = Mixer()
    playing = mixer.play(Sample(np.ones(100)), 1.0, 0.0)
    out = mixer.mix()
    left, right = compute_pan_weights(0.0)
    assert out.shape == (MIX_SAMPLES, 2)
    assert np.allclose(out[:100, 0], left)
    assert np.allclose(out[:100, 1], right)
    assert not out[100:].any()
    assert playing.stopped
    assert mixer.playing_samples == []


def test_mix_hard_left():
    mixer = Mixer()
    mixer.play(Sample(np.ones(MIX_SAMPLES * 2)), 1.0, -1.0)
    out = mixer.mix()
    assert np.allclose(out[:, 0], 1.0)
    assert np.allclose(out[:, 1], 0.0, atol=1e-6)
    assert len(mixer.playing_samples) == 1


def test_loop_wraps_and_keeps_playing():
    mixer = Mixer()
    playing = mixer.loop(Sample(np.ones(10)))
    out = mixer.mix()
    assert playing.i == MIX_SAMPLES % 10
    assert not playing.stopped
    assert mixer.playing_samples == [playing]
    assert out[:, 0].min() > 0.0


def test_play_3d_to_the_right():
    mixer = Mixer()
    mixer.play_3d(Sample(np.ones(MIX_SAMPLES)), 1.0, [5.0, 0.0, 0.0])
    out = mixer.mix()
    assert np.allclose(out[:, 1], 1.0, atol=1e-5)
    assert np.allclose(out[:, 0], 0.0, atol=1e-5)


def test_stop_removes_sample_after_fade():
    mixer = Mixer()
    playing = mixer.loop(Sample(np.ones(50)))
    playing.stop(0.0)
    assert playing.stopping
    mixer.mix()
    assert playing.stopped
    assert mixer.playing_samples == []


def test_stop_all_samples_marks_every_sample():
    mixer = Mixer()
    first = mixer.loop(Sample(np.ones(50)))
    second = mixer.play(Sample(np.ones(5000)))
    mixer.stop_all_samples()
    assert first.stopping and second.stopping
    assert first.volume.target == 0.0


def test_second_stop_shortens_ramp_only():
    playing = PlayingSample(Sample([1.0]))
    playing.stop(0.5)
    playing.stop(0.1)
    assert playing.volume.ramp == 0.1
    playing.stop(0.3)
    assert playing.volume.ramp == 0.1


def test_set_volume_ignored_while_stopping():
    playing = PlayingSample(Sample([1.0]))
    playing.stop(0.5)
    playing.set_volume(0.8, 0.0)
    assert playing.volume.target == 0.0
    assert playing.volume.value == 1.0


def test_pan_and_position_respect_mode():
    flat = PlayingSample(Sample([1.0]), 1.0, 0.0)
    flat.set_position([1.0, 2.0, 3.0], 0.0)
    flat.set_pan(0.5, 0.0)
    assert np.isnan(flat.position.value).all()
    assert flat.pan.value == 0.5

    spatial = PlayingSample(Sample([1.0]), 1.0, position=[0.0, 0.0, 0.0])
    spatial.set_pan(0.5, 0.0)
    spatial.set_position([1.0, 2.0, 3.0], 0.0)
    spatial.set_half_volume_radius(2.0, 0.0)
    assert math.isnan(spatial.pan.value)
    assert spatial.position.value.tolist() == [1.0, 2.0, 3.0]
    assert spatial.half_volume_radius.value == 2.0


def test_listener_zero_right_defaults_to_x():
    listener = Listener()
    listener.set_position_right([1.0, 1.0, 1.0], [0.0, 0.0, 0.0], 0.0)
    assert listener.right.value.tolist() == [1.0, 0.0, 0.0]
    listener.set_position_right([1.0, 1.0, 1.0], [0.0, 3.0, 0.0], 0.0)
    assert np.allclose(listener.right.value, [0.0, 1.0, 0.0])
    assert listener.position.value.tolist() == [1.0, 1.0, 1.0]


def test_global_volume_scales_output():
    mixer = Mixer()
    mixer.set_volume(0.0, 0.0)
    mixer.play(Sample(np.ones(MIX_SAMPLES * 2)))
    out = mixer.mix()
    assert not out.any()


def test_sample_from_unknown_extension_raises():
    with pytest.raises(ValueError, match="unsure how to load"):
        Sample.from_file("noise.mp3")


def test_sample_from_wav_file(tmp_path):
    path = tmp_path / "tone.wav"
    with wave.open(str(path), "wb") as out:
        out.setnchannels(1)
        out.setsampwidth(2)
        out.setframerate(48000)
        out.writeframes(struct.pack("<2h", 16384, -16384))
    sample = Sample.from_file(str(path))
    assert sample.data.tolist() == [0.5, -0.5]