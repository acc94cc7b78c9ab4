import numpy as np
import pytest

from remote_feed import (
    RemoteBoidState,
    RemoteMirror,
    interpolate_remote_boids,
    remote_type_for_index,
    transform_remote_boids,
)


def test_types_assigned_by_index():
    assert remote_type_for_index(0) == 'predator'
    assert remote_type_for_index(12) == 'predator'
    assert remote_type_for_index(60) == 'predator'
    assert remote_type_for_index(5) == 'producer'
    assert remote_type_for_index(10) == 'producer'
    assert remote_type_for_index(1) == 'prey'
    assert remote_type_for_index(7) == 'prey'


def test_transform_scales_to_screen():
    samples = transform_remote_boids([0.5, 0.25, 0.01, -0.02, 1.0, 0.0, 0.0, 0.0], 800, 600)

    first = samples[0]
    assert (first.x, first.y, first.type) == (400.0, 150.0, 'predator')
    assert first.vx == pytest.approx(8.0)
    assert first.vy == pytest.approx(-12.0)
    assert samples[1] == RemoteBoidState(800.0, 0.0, 0.0, 0.0, 'prey')


def test_transform_ignores_partial_record():
    assert len(transform_remote_boids([0.1, 0.1, 0.0, 0.0, 0.5, 0.5], 100, 100)) == 1
    assert transform_remote_boids([], 100, 100) == []


def test_interpolation_clamps_t():
    a = [RemoteBoidState(0.0, 0.0, 0.0, 0.0, 'prey')]
    b = [RemoteBoidState(10.0, 20.0, 1.0, -1.0, 'producer')]

    mid = interpolate_remote_boids(a, b, 0.5)[0]
    assert (mid.x, mid.y, mid.vx, mid.vy, mid.type) == (5.0, 10.0, 0.5, -0.5, 'producer')
    assert interpolate_remote_boids(a, b, -1.0)[0].x == 0.0
    assert interpolate_remote_boids(a, b, 3.0)[0].x == 10.0


def test_mirror_creates_pool_and_tracks_samples():
    mirror = RemoteMirror()
    samples = transform_remote_boids([0.1, 0.2, 0.0, 0.0] * 13, 1000, 1000)
    organisms = mirror.apply(samples)

    assert len(organisms) == 13
    assert organisms[0].type == 'predator'
    assert organisms[0].radius == 5.0
    assert organisms[5].type == 'producer'
    assert organisms[1].radius == 3.0
    assert organisms[3].genes.hue == (3 * 29) % 360
    assert organisms[0].position.tolist() == pytest.approx([100.0, 200.0])


def test_mirror_energy_and_age():
    mirror = RemoteMirror()
    resting = [RemoteBoidState(1.0, 1.0, 0.0, 0.0, 'prey')]
    organism = mirror.apply(resting)[0]
    assert organism.energy == pytest.approx(60.0 * 0.98)
    assert organism.age == 1

    for _ in range(200):
        mirror.apply(resting)
    assert organism.energy == 10.0

    mirror.apply([RemoteBoidState(1.0, 1.0, 1.0, 0.0, 'prey')])
    assert organism.energy == organism.max_energy == 120.0

    organism.age = organism.max_age - 1
    mirror.apply(resting)
    assert organism.age == 0


def test_mirror_reuses_pool_and_bounds_trail():
    mirror = RemoteMirror(trail_length=20)
    first = mirror.apply(transform_remote_boids(np.full(12, 0.5), 100, 100))
    for step in range(30):
        mirror.apply(transform_remote_boids(np.full(12, 0.5), 100, 100))
    shrunk = mirror.apply(transform_remote_boids(np.full(4, 0.5), 100, 100))

    assert len(shrunk) == 1
    assert shrunk[0] is first[0]
    assert len(first[0].trail) == 20


def test_mirror_follows_type_changes():
    mirror = RemoteMirror()
    organism = mirror.apply([RemoteBoidState(0.0, 0.0, 0.0, 0.0, 'prey')])[0]
    mirror.apply([RemoteBoidState(0.0, 0.0, 0.0, 0.0, 'predator')])
    assert organism.type == 'predator'
    assert organism.radius == 5.0


def test_mirrored_energy_tracks_screen_speed():
    mirror = RemoteMirror()
    samples = transform_remote_boids([0.5, 0.5, 0.01, 0.02], 800, 600)
    organism = mirror.apply(samples)[0]

    speed = np.hypot(8.0, 12.0)
    assert organism.velocity.tolist() == pytest.approx([8.0, 12.0])
    assert organism.energy == organism.max_energy
    assert organism.energy == min(120.0, 60.0 * 0.98 + speed * 250.0)
