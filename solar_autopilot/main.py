"""Main application entry point."""
import logging
import time

from .config import Config
from .coordinator import LearningCoordinator

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def evaluation_loop(coordinator: LearningCoordinator, interval: int):
    """Evaluate on a fixed interval; retrain and persist once a day."""
    logger.info(f"Evaluation loop started (interval: {interval}s)")
    last_training = time.monotonic()

    while True:
        try:
            coordinator.evaluate()

            if time.monotonic() - last_training >= 24 * 3600:
                coordinator.train_all()
                coordinator.save_models()
                last_training = time.monotonic()
        except Exception as e:
            logger.error(f"Error in evaluation loop: {e}", exc_info=True)

        time.sleep(interval)


def main():
    """Main application."""
    logger.info("=" * 60)
    logger.info("Solar Autopilot - Self-Learning Charging Engine")
    logger.info("=" * 60)

    # Load configuration
    logger.info("Loading configuration...")
    config = Config()
    logging.getLogger().setLevel(config.log_level)

    # Initialize coordinator
    logger.info("Initializing coordinator...")
    coordinator = LearningCoordinator.from_config(config)

    # Train on startup unless a previous run left models behind
    if not coordinator.load_models():
        logger.info("Training initial models...")
        coordinator.train_all()
        coordinator.save_models()

    if config.evaluation_interval > 0:
        evaluation_loop(coordinator, config.evaluation_interval)
    else:
        logger.info("Continuous evaluation disabled, running a single evaluation")
        coordinator.evaluate()


if __name__ == '__main__':
    main()
