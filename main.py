# main.py

import pygame
import constants
import logging
import logger_setup
import numpy as np
from sph_engine import SPHEngine
from flocking_engine import FlockingEngine
import renderer

# Get the application's dedicated logger
logger = logging.getLogger(logger_setup.LOGGER_NAME)


def run_explosion(engine, screen, clock, trail_surface, frames, throttle):
    """
    Explosion phase: the burst settles under SPH while fading out.
    Returns False if the window was closed.
    """
    for frame in range(frames):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False

        # --- Physics Update ---
        engine.apply_curl_noise(frame / constants.FPS)
        engine.step(constants.FRAME_MS)
        engine.set_life(1.0 - frame / frames)

        # --- Logging (throttled) ---
        if frame % throttle == 0:
            logger.debug(
                f"Explosion frame={frame}, particles={engine.particle_count}, "
                f"substeps={engine.last_substeps}, adaptive_dt={engine.adaptive_dt:.4f}"
            )

        # --- Drawing ---
        renderer.fade(screen, trail_surface)
        renderer.draw_particles(screen, engine)
        pygame.display.flip()
        clock.tick(constants.FPS)
    return True


def run_ecosystem(engine, screen, clock, trail_surface, frames, throttle):
    """Ecosystem phase: flocking, predation and reproduction until closed or out of frames."""
    for frame in range(frames):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False
            if event.type == pygame.MOUSEBUTTONDOWN:
                engine.add_organism(event.pos[0], event.pos[1], 'prey')

        engine.step(constants.FRAME_MS)
        engine.replenish()

        if frame % throttle == 0:
            stats = engine.get_population_stats()
            logger.info(
                f"Ecosystem frame={frame}, total={stats['total']}, predators={stats['predators']}, "
                f"prey={stats['prey']}, producers={stats['producers']}, "
                f"avg_energy={stats['avg_energy']:.1f}, avg_age={stats['avg_age']:.1f}"
            )

        renderer.fade(screen, trail_surface)
        renderer.draw_organisms(screen, engine)
        pygame.display.flip()
        clock.tick(constants.FPS)
    return True


def main():
    """
    Runs the 404 page animation: an SPH burst from the centre of the screen,
    followed by the flocking ecosystem.
    """
    # --- Setup ---
    logger_setup.setup_logging()
    config = logger_setup.load_config()
    driver_config = config['driver']

    logger.info("Application starting...")
    logger.info(f"Loaded configuration: {config}")

    # Initialize the master random number generator (RNG)
    rng = np.random.default_rng(config['master_seed'])
    logger.info(f"Master RNG initialized with seed: {config['master_seed']}")

    # --- Initialization ---
    pygame.init()
    screen = pygame.display.set_mode((constants.WIDTH, constants.HEIGHT))
    pygame.display.set_caption(constants.TITLE)
    clock = pygame.time.Clock()
    trail_surface = pygame.Surface((constants.WIDTH, constants.HEIGHT), pygame.SRCALPHA)
    throttle = driver_config['log_throttle_frames']

    sph = SPHEngine(constants.WIDTH, constants.HEIGHT, config=config['sph'], rng=rng)
    sph.emit_burst(constants.WIDTH / 2, constants.HEIGHT / 2, driver_config['burst_particles'])

    running = run_explosion(sph, screen, clock, trail_surface, driver_config['explosion_frames'], throttle)
    sph.clear()

    if running:
        ecosystem = FlockingEngine(constants.WIDTH, constants.HEIGHT, config=config['flocking'], rng=rng)
        ecosystem.seed_population(
            prey=driver_config['initial_prey'],
            producers=driver_config['initial_producers'],
            predators=driver_config['initial_predators']
        )
        run_ecosystem(ecosystem, screen, clock, trail_surface, driver_config['ecosystem_frames'], throttle)
        logger.info(
            f"Ecosystem finished after {ecosystem.step_count} steps: births={ecosystem.births}, "
            f"deaths={ecosystem.deaths}, kills={ecosystem.kills}."
        )

    logger.info("Application shutting down.")
    pygame.quit()

if __name__ == "__main__":
    main()
