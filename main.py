# main.py
"""
Main entry point for the particle gravity simulation.

Runs one simulation session:
1. Loads configuration from `config.json` and applies command-line overrides.
2. Configures logging.
3. Sets up the simulation controller and its particles.
4. Runs the main loop, with or without a window.
5. Closes the window and reports the optional profile.
"""
import argparse
import logging
from utils import apply_overrides, setup_logging, load_config
import cProfile
import pstats
import io


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="A Newtonian gravity particle simulation")
    parser.add_argument("--config", "-c", default="config.json", help="Path to the JSON configuration")
    parser.add_argument("--particles", "-p", type=int, help="Total particles")
    parser.add_argument("--framerate", "-f", type=int, help="Frame cap in FPS (0 runs as fast as possible)")
    parser.add_argument("--gravity", "-g", type=float, help="Gravitational constant")
    parser.add_argument("--time-scale", "-t", type=float, help="Seconds of simulated time per tick")
    parser.add_argument("--seed", type=int, help="Seed for the initial particle layout")
    parser.add_argument("--headless", action="store_true", default=None, help="Run without a window")
    parser.add_argument("--steps", type=int, help="Stop after this many ticks")
    return parser.parse_args(argv)


def main(argv=None):
    """
    Runs a session and returns the process exit code.
    """
    args = parse_args(argv)

    # Logging is not set up yet, so we use a print for this one error.
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"FATAL: Could not load {args.config}. Error: {e}")
        return 1

    config = apply_overrides(config, {
        'particles.count': args.particles,
        'particles.seed': args.seed,
        'run_control.framerate': args.framerate,
        'run_control.headless': args.headless,
        'run_control.max_steps': args.steps,
        'simulation_parameters.gravitational_constant': args.gravity,
        'simulation_parameters.delta_time': args.time_scale,
    })

    setup_logging(config)

    logging.info("--- Particle Gravity Simulation Starting ---")

    run_params = config.get('run_control', {})
    vis_params = config.get('visualization', {})

    from particle import generate_from_config
    from simulation import SimulationController

    controller = SimulationController.from_config(config)

    def regenerate():
        controller.reset(generate_from_config(config.get('particles', {})))

    headless = bool(run_params.get('headless', False))
    log_throttle = run_params.get('log_throttle_steps', 100)
    max_steps = run_params.get('max_steps', 0)  # 0 runs until the window closes

    visualizer = None
    if headless:
        # Nobody is there to press Space.
        controller.resume()
        if not max_steps:
            logging.warning("Headless run without max_steps (--steps) never ends on its own; stop it with Ctrl+C.")
    else:
        from visualization import Visualizer
        visualizer = Visualizer(vis_params, framerate=run_params.get('framerate', 60))
        if visualizer.follow_enabled:
            controller.compute_stats = True

    profiler = cProfile.Profile() if run_params.get('profile', False) else None

    running = True
    if profiler is not None:
        profiler.enable()
    try:
        while running:
            if controller.step() and controller.tick % log_throttle == 0:
                # One line per log_throttle_steps ticks.
                logging.info(f"Simulation tick {controller.tick}" + (f"/{max_steps}" if max_steps else ""))
                stats = controller.aggregate_stats()
                if stats is not None and stats.available:
                    logging.debug(
                        f"Tick {controller.tick} | COM: ({stats.center_of_mass[0]:.4f}, {stats.center_of_mass[1]:.4f}) "
                        f"| Average Velocity: ({stats.average_velocity[0]:.4f}, {stats.average_velocity[1]:.4f})"
                    )

            if visualizer is not None and not visualizer.draw(controller, regenerate):
                running = False

            if max_steps and controller.tick >= max_steps:
                logging.info(f"Reached max_steps ({max_steps}). Stopping simulation.")
                running = False
    except KeyboardInterrupt:
        logging.info(f"Interrupted at tick {controller.tick}. Stopping simulation.")
    finally:
        if profiler is not None:
            profiler.disable()
        if visualizer is not None:
            visualizer.close()

    logging.info(f"Simulation loop finished after {controller.tick} ticks.")

    if profiler is not None:
        logging.info("--- Performance Profile ---")
        s = io.StringIO()
        stats = pstats.Stats(profiler, stream=s).sort_stats('cumtime')
        stats.print_stats(20)
        logging.info(f"\n{s.getvalue()}")

    logging.info("--- Particle Gravity Simulation Shutting Down ---")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
