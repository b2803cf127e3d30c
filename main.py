
import asyncio
import logging
import signal

from core.exceptions import SniperError
from core.initialization import initialize_components, load_configuration
from notifiers.hub import format_startup
from utils.config_validator import validate_config
from utils.logger import setup_logger


async def _close_all(components: dict) -> None:
    for source in components["sources"]:
        await source.close()
    await components["oracle"].close()
    await components["bus"].join()
    await components["bus"].close()
    await components["notifier"].close()


async def run_bot() -> None:
    """
    Entrypoint coroutine for the sniper.

    Loads and validates the configuration, configures the root logger so that
    every module logger writes to the terminal and the rotating log file,
    wires the components and runs the scheduler until a signal arrives.

    The first SIGINT/SIGTERM stops the scheduler and waits for the exit
    monitors of the open positions to finish; a second one cancels them.
    """
    config = load_configuration()
    validate_config(config)
    logger = setup_logger(None, to_console=True)

    components = initialize_components(config, logger=logging.getLogger("SniperBot"))
    scheduler = components["scheduler"]
    manager = components["manager"]
    notifier = components["notifier"]

    stopping = False

    def _on_signal() -> None:
        nonlocal stopping
        if not stopping:
            stopping = True
            logger.info("🛑 Stop requested, waiting for %d open position(s)", manager.open_count)
            scheduler.stop()
        else:
            logger.warning("🛑 Second stop request, cancelling exit monitors")
            asyncio.get_running_loop().create_task(manager.shutdown())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _on_signal)

    try:
        balance = await scheduler.preflight()
        targets = {tag: p.target for tag, p in manager.exit_profiles.items()}
        await notifier.broadcast(
            format_startup(balance, manager.budget, manager.max_positions, targets)
        )
        if not stopping:
            await scheduler.run()
        await manager.wait_idle()
    except SniperError as exc:
        logger.error("❌ Start-up check failed: %s", exc)
    finally:
        await manager.shutdown()
        scheduler.log_performance()
        await _close_all(components)


def main():
    try:
        asyncio.run(run_bot())
    except Exception as e:
        print(f"❌ Bot terminated due to error: {e}")


if __name__ == "__main__":
    main()
