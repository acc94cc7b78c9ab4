import logging

import numpy as np
import pytest

from kernels import poly6, spiky_gradient, viscosity_laplacian
from sph_engine import SPHEngine


def test_empty_engine_steps_without_error(sph):
    sph.step(16)
    sph.compute_density_pressure()
    assert sph.compute_forces() == 0.0
    assert sph.particle_count == 0
    assert sph.get_particles() == []


@pytest.mark.parametrize("width, height", [(0, 100), (100, -1), (-5, -5)])
def test_invalid_bounds_rejected(width, height, caplog):
    with caplog.at_level(logging.CRITICAL, logger="glitchfield"):
        with pytest.raises(ValueError):
            SPHEngine(width, height)
    assert any(record.levelno == logging.CRITICAL for record in caplog.records)


@pytest.mark.parametrize("config", [
    {'cfl': 1.0},
    {'cfl': 0.0},
    {'min_dt': 0.05, 'max_dt': 0.01},
    {'smoothing_radius': 0.0},
])
def test_invalid_config_rejected(config):
    with pytest.raises(ValueError):
        SPHEngine(100, 100, config=config)


def test_isolated_particle_density_is_floor(sph):
    sph.add_particle(500, 500)
    sph.add_particle(700, 700)
    sph.compute_density_pressure()

    assert sph.densities.tolist() == [0.1, 0.1]
    assert sph.pressures[0] == pytest.approx(0.1 * (0.1 - 1.0))


def test_density_never_below_floor_including_coincident(sph, rng):
    for x, y in rng.uniform(400, 420, size=(60, 2)):
        sph.add_particle(x, y)
    sph.add_particle(410, 410)
    sph.add_particle(410, 410)
    sph.compute_density_pressure()

    assert np.all(sph.densities >= 0.1)
    assert np.all(np.isfinite(sph.pressures))


def test_coincident_particles_stay_finite(sph):
    sph.add_particle(300, 300)
    sph.add_particle(300, 300)
    sph.step(16)
    assert np.all(np.isfinite(sph.positions))


def test_boundary_reflection_on_right_wall():
    engine = SPHEngine(200, 200)
    radius = engine.particle_radius
    engine.add_particle(200 - radius - 0.1, 100, vx=100.0, vy=0.0)
    engine.step(16)

    assert engine.positions[0, 0] == 200 - radius
    assert engine.velocities[0, 0] == pytest.approx(-50.0)


def test_boundary_reflection_on_left_wall():
    engine = SPHEngine(200, 200, config={'gravity': 0.0})
    engine.add_particle(2.05, 100, vx=-40.0, vy=0.0)
    engine.step(16)

    assert engine.positions[0, 0] == engine.particle_radius
    assert engine.velocities[0, 0] == pytest.approx(20.0)


@pytest.mark.parametrize("speed", [0.0, 1.0, 1e3, 1e9])
def test_adaptive_dt_stays_in_band(speed):
    engine = SPHEngine(1000, 1000, config={'gravity': 0.0})
    engine.add_particle(500, 500, vx=speed)
    for _ in range(20):
        engine.step(16)
        assert engine.min_dt <= engine.adaptive_dt <= engine.max_dt
        assert np.isfinite(engine.adaptive_dt)


def test_adaptive_dt_holds_or_grows_without_motion():
    engine = SPHEngine(1000, 1000)
    engine.adaptive_dt = 0.01
    assert engine.compute_adaptive_dt(0.0) == pytest.approx(0.011)
    engine.adaptive_dt = engine.max_dt
    assert engine.compute_adaptive_dt(0.0) == engine.max_dt


def test_adaptive_dt_growth_capped():
    engine = SPHEngine(1000, 1000)
    engine.adaptive_dt = 0.002
    assert engine.compute_adaptive_dt(1e-3) == pytest.approx(0.0022)


def test_adaptive_dt_clamped_to_min_at_extreme_speed():
    engine = SPHEngine(1000, 1000)
    assert engine.compute_adaptive_dt(1e12) == engine.min_dt


def _seeded_engine():
    engine = SPHEngine(1000, 1000)
    engine.add_particle(500, 500, vx=1.0, vy=0.5)
    engine.add_particle(505, 500, vx=-0.5, vy=0.0)
    engine.add_particle(502, 504, vx=0.0, vy=-1.0)
    return engine


def test_substeps_equal_repeated_steps():
    whole = _seeded_engine()
    parts = _seeded_engine()
    assert whole.adaptive_dt == whole.max_dt

    whole.step(330)
    for _ in range(10):
        parts.step(33)

    assert whole.last_substeps == 10
    np.testing.assert_allclose(whole.positions, parts.positions, rtol=1e-9, atol=1e-9)
    np.testing.assert_allclose(whole.velocities, parts.velocities, rtol=1e-9, atol=1e-9)


def test_substeps_capped_with_warning(caplog):
    engine = SPHEngine(1000, 1000)
    engine.add_particle(500, 100)
    with caplog.at_level(logging.WARNING, logger="glitchfield"):
        engine.step(5000)

    assert engine.last_substeps == engine.max_substeps
    assert any("capping" in record.getMessage() for record in caplog.records)
    # Only max_substeps * dt of the frame is simulated.
    assert engine.positions[0, 1] < 100 + 98.0 * 2.0 ** 2


def test_non_positive_frame_is_noop(sph):
    sph.add_particle(100, 100, vx=5.0)
    sph.step(0)
    sph.step(-16)
    assert sph.positions[0].tolist() == [100.0, 100.0]
    assert sph.step_count == 0


def test_close_pair_repels_above_rest_density():
    engine = SPHEngine(100, 100, config={'smoothing_radius': 1.0, 'rest_density': 0.1, 'gravity': 0.0})
    engine.add_particle(50.0, 50.0)
    engine.add_particle(50.5, 50.0)
    engine.step(16)

    assert engine.densities[0] > engine.rest_density
    assert engine.pressures[0] > 0
    assert engine.accelerations[0, 0] < 0 < engine.accelerations[1, 0]
    assert engine.velocities[0, 0] < 0 < engine.velocities[1, 0]
    assert engine.positions[0, 0] < 50.0 < 50.5 < engine.positions[1, 0]


def test_dropped_particle_settles_on_floor():
    engine = SPHEngine(100, 100)
    radius = engine.particle_radius
    engine.add_particle(50.0, 50.0)
    for _ in range(600):
        engine.step(16)

    assert engine.positions[0, 1] == pytest.approx(100 - radius)
    assert abs(engine.velocities[0, 1]) <= engine.gravity * 0.016 + 1e-9
    assert engine.velocities[0, 0] == 0.0


def test_gravity_accelerates_downward(sph):
    sph.add_particle(500, 100)
    sph.step(16)
    assert sph.accelerations[0, 1] == pytest.approx(98.0)
    assert sph.velocities[0, 1] > 0


def test_read_views_are_read_only(sph):
    sph.add_particle(10, 10)
    with pytest.raises(ValueError):
        sph.positions[0, 0] = 5.0
    with pytest.raises(ValueError):
        sph.velocities[0, 0] = 5.0


def test_snapshots_do_not_change_on_step(sph):
    sph.add_particle(500, 100, vx=10.0, color='#ff0000')
    before = sph.get_particles()[0]
    sph.step(16)
    after = sph.get_particles()[0]

    assert before.x == 500.0
    assert after.x > before.x
    assert before.color == after.color == '#ff0000'
    assert before.speed == pytest.approx(10.0)


def test_emit_burst_spreads_particles(sph):
    sph.emit_burst(500, 500, 8, speed_range=(100.0, 100.0))
    assert sph.particle_count == 8
    speeds = np.hypot(sph.velocities[:, 0], sph.velocities[:, 1])
    np.testing.assert_allclose(speeds, 100.0)
    np.testing.assert_allclose(sph.velocities.sum(axis=0), 0.0, atol=1e-9)


def test_emit_burst_non_positive_count_warns(sph, caplog):
    with caplog.at_level(logging.WARNING, logger="glitchfield"):
        sph.emit_burst(0, 0, 0)
    assert sph.particle_count == 0
    assert caplog.records


def test_clear_and_set_life(sph):
    sph.emit_burst(500, 500, 10)
    sph.set_life(1.5)
    assert all(p.life == 1.0 for p in sph.get_particles())
    sph.set_life(0.25)
    assert all(p.life == 0.25 for p in sph.get_particles())
    sph.clear()
    assert sph.particle_count == 0
    sph.step(16)


def test_curl_noise_changes_velocity_only(sph):
    sph.add_particle(123.0, 456.0)
    sph.apply_curl_noise(1.0, strength=5.0, scale=1.0)
    assert sph.positions[0].tolist() == [123.0, 456.0]
    assert np.any(sph.velocities[0] != 0.0)


def _close_pair(speed=0.0, **overrides):
    """Two particles h/2 apart on the x axis, approaching at 2 * speed."""
    config = {'smoothing_radius': 1.0, 'rest_density': 0.1, 'gravity': 0.0}
    config.update(overrides)
    engine = SPHEngine(100, 100, config=config)
    engine.add_particle(50.0, 50.0, vx=speed)
    engine.add_particle(50.5, 50.0, vx=-speed)
    return engine


def test_viscosity_force_matches_kernel():
    inviscid = _close_pair(1.0, viscosity=0.0)
    viscous = _close_pair(1.0, viscosity=0.5)
    for engine in (inviscid, viscous):
        engine.compute_density_pressure()
        engine.compute_forces()

    rho = viscous.densities
    expected = 0.5 * (1.0 / rho[1]) * (-1.0 - 1.0) * poly6(0.25, 1.0) / rho[0]
    delta = viscous.accelerations - inviscid.accelerations
    assert delta[0, 0] == pytest.approx(expected)
    assert delta[1, 0] == pytest.approx(-expected)
    assert delta[:, 1].tolist() == pytest.approx([0.0, 0.0])


def test_viscosity_damps_relative_velocity():
    inviscid = _close_pair(1.0, viscosity=0.0)
    viscous = _close_pair(1.0, viscosity=0.5)
    inviscid.step(16)
    viscous.step(16)

    closing_inviscid = inviscid.velocities[0, 0] - inviscid.velocities[1, 0]
    closing_viscous = viscous.velocities[0, 0] - viscous.velocities[1, 0]
    assert 0 < closing_viscous < closing_inviscid


def test_surface_tension_force_along_normal():
    sigma = 0.5
    plain = _close_pair(viscosity=0.0, surface_tension=0.0)
    tense = _close_pair(viscosity=0.0, surface_tension=sigma)
    for engine in (plain, tense):
        engine.compute_density_pressure()
        engine.compute_forces()

    rho = tense.densities
    grad_x, grad_y = spiky_gradient(-0.5, 0.0, 0.5, 1.0)
    normal_x, normal_y = grad_x / rho[1], grad_y / rho[1]
    normal_len = np.hypot(normal_x, normal_y)
    curvature = viscosity_laplacian(0.25, 1.0) / rho[1]

    delta = tense.accelerations[0] - plain.accelerations[0]
    assert delta[0] == pytest.approx(-sigma * curvature * normal_x / normal_len / rho[0])
    assert delta[1] == pytest.approx(0.0)
    # The surface force on the lone pair points away from the neighbour.
    assert delta[0] < 0
