import asyncio
from core.initialization import initialize_components, load_configuration
from utils.config_manager import ConfigManager
from utils.config_validator import validate_config
from utils.logger import configure_from


async def run_bot() -> None:
    """
    Entrypoint coroutine for the signal engine.

    Loads and validates the configuration, wires the components and starts
    the ingestor (plus the execution agent when enabled).  Runs until
    cancelled, then stops the agent first and the ingestor second so no new
    execution starts from a collection that is no longer refreshed.
    """
    config = load_configuration()
    validate_config(config)

    logger = configure_from(ConfigManager(config))
    components = initialize_components(config, overrides={"logger": logger})

    ingestor = components["ingestor"]
    agent = components["agent"]
    try:
        if agent is not None:
            agent.start()
        await ingestor.run()
    except asyncio.CancelledError:
        logger.info("Shutdown requested")
    finally:
        if agent is not None:
            await agent.stop()
        await ingestor.aclose()
        ingestor.log_metrics()
        await components["feed"].close()
        await components["bus"].close()
        components["store"].close()


def main():
    try:
        asyncio.run(run_bot())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"❌ Engine terminated due to error: {e}")


if __name__ == "__main__":
    main()
